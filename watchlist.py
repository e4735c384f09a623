# Filename: watchlist.py

import json
import logging
import os
from typing import Dict, List

from chain_utils import identify_chain, normalize_address
from models import SUPPORTED_CHAINS

logger = logging.getLogger("Watchlist")


def load_group_configs(path: str = "watchlist.json") -> List[Dict[str, str]]:
    """
    Read group configurations: a JSON list of {"chat_id", "chain", "token_address"}.
    Returns an empty list when the file is missing or unreadable.
    """
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"[WATCHLIST] Failed to read {path}: {e}")
        return []
    if not isinstance(data, list):
        logger.error(f"[WATCHLIST] {path} must contain a list of group configs")
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def desired_targets(group_configs: List[Dict[str, str]]) -> Dict[str, List[str]]:
    """
    Collapse group configurations into the de-duplicated token list per chain.
    Entries whose address does not fit their chain (or any chain) are rejected.
    """
    targets: Dict[str, List[str]] = {chain: [] for chain in SUPPORTED_CHAINS}
    for group in group_configs:
        address = (group.get("token_address") or "").strip()
        chain = group.get("chain") or identify_chain(address)
        if chain not in targets:
            logger.warning(f"[WATCHLIST] Rejected {address!r} for group {group.get('chat_id')}: unknown chain")
            continue
        normalized = normalize_address(address, chain)
        if normalized is None:
            logger.warning(f"[WATCHLIST] Rejected {address!r} for group {group.get('chat_id')}: not a valid {chain} address")
            continue
        if normalized not in targets[chain]:
            targets[chain].append(normalized)
    return targets
