# Filename: security_scanner.py

import requests
from loguru import logger

from models import CHAIN_ETH, CHAIN_SOLANA, SecurityResult

ZERO_OWNERS = {
    "0x0000000000000000000000000000000000000000",
    "0x000000000000000000000000000000000000dead"
}

# Flags that are dangerous whoever owns the contract
ETH_ALWAYS_RISKS = [
    ("is_honeypot", "Honeypot (Cannot Sell)"),
    ("can_take_back_ownership", "Ownership can be reclaimed"),
    ("hidden_owner", "Hidden Owner detected"),
    ("selfdestruct", "Contract can self-destruct"),
    ("cannot_sell_all", "Cannot sell all tokens"),
    ("cannot_buy", "Cannot buy this token"),
    ("owner_change_balance", "Owner can change balances"),
    ("is_proxy", "Upgradeable proxy contract")
]

# Flags that only matter while ownership is not renounced
ETH_OWNER_RISKS = [
    ("is_mintable", "Mintable (Dev can print tokens)"),
    ("is_blacklisted", "Has Blacklist function"),
    ("transfer_pausable", "Transfers can be paused"),
    ("slippage_modifiable", "Slippage can be modified"),
    ("personal_slippage_modifiable", "Per-user slippage control"),
    ("is_whitelisted", "Has Whitelist function"),
    ("external_call", "External contract calls"),
    ("trading_cooldown", "Trading cooldown enabled")
]

CRITICAL_MARKERS = ("Honeypot", "change balances", "reclaimed", "self-destruct", "Cannot Sell", "Cannot buy")

MAX_TAX = 0.1


def verdict(risks, critical: bool) -> SecurityResult:
    if critical:
        return SecurityResult(False, risks, "DANGER", "CRITICAL RISK DETECTED. This token may be malicious.")
    if risks:
        return SecurityResult(False, risks, "CAUTION", f"{len(risks)} risk(s) found. Proceed with caution.")
    return SecurityResult(True, risks, "SAFE", "Contract looks clean. No major risks detected.")


def evaluate_rugcheck(data: dict) -> SecurityResult:
    risks = []
    critical = False
    for risk in data.get("risks") or []:
        name = risk.get("name") or risk.get("description") or "Unknown risk"
        level = risk.get("level", "")
        if level in ("danger", "critical"):
            risks.append(name)
            critical = True
        elif level in ("warn", "warning"):
            risks.append(name)
    return verdict(risks, critical)


def _tax(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def evaluate_goplus(token: dict, chain: str) -> SecurityResult:
    risks = []

    if chain == CHAIN_ETH:
        owner = (token.get("owner_address") or "").lower()
        renounced = not owner or owner in ZERO_OWNERS

        risks.extend(label for flag, label in ETH_ALWAYS_RISKS if token.get(flag) == "1")
        if not renounced:
            risks.extend(label for flag, label in ETH_OWNER_RISKS if token.get(flag) == "1")

        buy_tax = _tax(token.get("buy_tax"))
        sell_tax = _tax(token.get("sell_tax"))
        if buy_tax > MAX_TAX:
            risks.append(f"High Buy Tax: {buy_tax * 100:.1f}%")
        if sell_tax > MAX_TAX:
            risks.append(f"High Sell Tax: {sell_tax * 100:.1f}%")

    elif chain == CHAIN_SOLANA:
        if token.get("is_honeypot") == "1":
            risks.append("Honeypot (Cannot Sell)")
        if (token.get("mintable") or {}).get("status") == "1":
            risks.append("Mint Authority Active")
        if (token.get("freezable") or {}).get("status") == "1":
            risks.append("Freeze Authority Active")
        if token.get("is_mutable") == "1":
            risks.append("Metadata is Mutable")
        if token.get("default_account_state_enabled") == "1":
            risks.append("Default account state enabled")

    critical = any(marker in risk for risk in risks for marker in CRITICAL_MARKERS)
    return verdict(risks, critical)


def badge(result: SecurityResult) -> str:
    if result.score == "DANGER":
        return "DANGER"
    if result.score == "CAUTION":
        return "CAUTION"
    return ""


class SecurityScanner:
    """
    Read-only token security lookups (RugCheck for Solana, GoPlus for EVM and as Solana fallback).
    Blocking HTTP; callers on the event loop should run scan() in a thread.
    """

    def __init__(self, config: dict):
        self.goplus_base = config.get("GOPLUS_BASE_URL", "https://api.gopluslabs.io/api/v1").rstrip("/")
        self.rugcheck_base = config.get("RUGCHECK_BASE_URL", "https://api.rugcheck.xyz/v1/tokens").rstrip("/")
        self.timeout = config.get("MARKET_DATA_TIMEOUT_SECONDS", 10)

    def scan(self, token_address: str, chain: str) -> SecurityResult:
        if chain == CHAIN_SOLANA:
            result = self.scan_with_rugcheck(token_address)
            if result is not None:
                return result
        return self.scan_with_goplus(token_address, chain)

    def scan_with_rugcheck(self, token_address: str):
        url = f"{self.rugcheck_base}/{token_address}/report/summary"
        try:
            resp = requests.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
            if resp.status_code != 200:
                logger.info(f"[SCAN] RugCheck HTTP {resp.status_code} for {token_address}, falling back to GoPlus")
                return None
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[SCAN] RugCheck fetch failed: {e}")
            return None

        logger.info(f"[SCAN] RugCheck score {data.get('score')} for {token_address}")
        return evaluate_rugcheck(data)

    def scan_with_goplus(self, token_address: str, chain: str) -> SecurityResult:
        chain_id = "1" if chain == CHAIN_ETH else "solana"
        url = f"{self.goplus_base}/token_security/{chain_id}"
        try:
            resp = requests.get(url, params={"contract_addresses": token_address},
                                headers={"Accept": "application/json"}, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[SCAN] GoPlus fetch failed: {e}")
            return SecurityResult(True, [], "SAFE", "Scan unavailable. Proceed with caution.")

        result = data.get("result") if data.get("code") == 1 else None
        if not result:
            logger.info(f"[SCAN] GoPlus has no data for {token_address}")
            return SecurityResult(True, [], "SAFE", "No data available (new token?)")

        token = next(iter(result.values()))
        return evaluate_goplus(token, chain)
