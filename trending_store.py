# Filename: trending_store.py

import json
import logging
import os
from typing import Any, Dict

logger = logging.getLogger("TrendingStore")


class TrendingStore:
    """JSON file persistence for trending state. Optional: a missing file is an empty cold start."""

    def __init__(self, state_file: str = "trending_state.json"):
        self.state_file = state_file

    def load(self) -> Dict[str, Any]:
        if not os.path.exists(self.state_file):
            return {}
        try:
            with open(self.state_file, 'r') as f:
                state = json.load(f)
            logger.info(f"[STORE] Loaded trending state from {self.state_file}")
            return state if isinstance(state, dict) else {}
        except (OSError, ValueError) as e:
            logger.error(f"[STORE] Failed to load trending state: {e}")
            return {}

    def save(self, state: Dict[str, Any]) -> bool:
        tmp_file = f"{self.state_file}.tmp"
        try:
            with open(tmp_file, 'w') as f:
                json.dump(state, f)
            os.replace(tmp_file, self.state_file)
            return True
        except OSError as e:
            logger.error(f"[STORE] Failed to save trending state: {e}")
            return False
