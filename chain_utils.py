# Filename: chain_utils.py

import re
from typing import Iterable, List, Optional

from models import CHAIN_ETH, CHAIN_SOLANA, WatchTarget

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
# Base58 alphabet, no 0, O, I or l
BASE58_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def identify_chain(address: str) -> Optional[str]:
    """Return the chain an address belongs to, or None when it matches no known format."""
    if not address:
        return None
    address = address.strip()
    if EVM_ADDRESS_RE.match(address):
        return CHAIN_ETH
    if BASE58_ADDRESS_RE.match(address):
        return CHAIN_SOLANA
    return None


def normalize_address(address: str, chain: str) -> Optional[str]:
    """Normalize an address for its chain; None if it is not valid there."""
    if not address:
        return None
    address = address.strip()
    if identify_chain(address) != chain:
        return None
    if chain == CHAIN_ETH:
        return address.lower()
    return address


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Compare addresses: case-insensitive for EVM, exact for base58."""
    if not a or not b:
        return False
    if a.startswith("0x") and b.startswith("0x"):
        return a.lower() == b.lower()
    return a == b


def to_watch_target(value, chain: str) -> Optional[WatchTarget]:
    if isinstance(value, WatchTarget):
        if value.chain != chain:
            return None
        value = value.address
    normalized = normalize_address(value, chain)
    if normalized is None:
        return None
    return WatchTarget(chain=chain, address=normalized)


def dedupe_targets(values: Iterable, chain: str) -> List[WatchTarget]:
    """Normalize and de-duplicate addresses for one chain, keeping first-seen order."""
    seen = set()
    targets = []
    for value in values:
        target = to_watch_target(value, chain)
        if target is None or target in seen:
            continue
        seen.add(target)
        targets.append(target)
    return targets
