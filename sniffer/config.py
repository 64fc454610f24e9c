"""
config.py

Configuration de Sniffer, lue depuis les variables d'environnement,
et configuration du logging.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel


ETHERSCAN_BASE_URL = "https://api.etherscan.io/v2/api"
DEXSCREENER_BASE_URL = "https://api.dexscreener.com"
THIRDWEB_SOCIAL_BASE_URL = "https://social.thirdweb.com"
ENSDATA_BASE_URL = "https://api.ensdata.net"

# Base mainnet
DEFAULT_CHAIN_ID = 8453
DEFAULT_DEX_CHAIN = "base"

MINUTE_MS = 60 * 1000


class Settings(BaseModel):
    etherscan_api_key: str = ""
    etherscan_base_url: str = ETHERSCAN_BASE_URL
    dexscreener_base_url: str = DEXSCREENER_BASE_URL
    social_base_url: str = THIRDWEB_SOCIAL_BASE_URL
    ens_base_url: str = ENSDATA_BASE_URL
    thirdweb_client_id: Optional[str] = None

    chain_id: int = DEFAULT_CHAIN_ID
    dex_chain: str = DEFAULT_DEX_CHAIN

    http_timeout: float = 30.0
    explorer_min_interval_ms: int = 250
    dex_min_interval_ms: int = 200
    social_min_interval_ms: int = 0

    wallet_ttl_ms: int = 30 * MINUTE_MS
    token_ttl_ms: int = 3 * MINUTE_MS
    social_ttl_ms: int = 10 * MINUTE_MS

    cache_path: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Construit les réglages à partir de l'environnement (valeurs par défaut sinon)."""

        def _int(name: str, default: int) -> int:
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            return int(raw)

        def _float(name: str, default: float) -> float:
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            return float(raw)

        defaults = cls()
        return cls(
            etherscan_api_key=os.getenv("ETHERSCAN_API_KEY", ""),
            etherscan_base_url=os.getenv("ETHERSCAN_BASE_URL", defaults.etherscan_base_url),
            dexscreener_base_url=os.getenv("DEXSCREENER_BASE_URL", defaults.dexscreener_base_url),
            social_base_url=os.getenv("THIRDWEB_SOCIAL_BASE_URL", defaults.social_base_url),
            ens_base_url=os.getenv("ENSDATA_BASE_URL", defaults.ens_base_url),
            thirdweb_client_id=os.getenv("THIRDWEB_CLIENT_ID") or None,
            chain_id=_int("SNIFFER_CHAIN_ID", defaults.chain_id),
            dex_chain=os.getenv("SNIFFER_DEX_CHAIN", defaults.dex_chain),
            http_timeout=_float("SNIFFER_HTTP_TIMEOUT", defaults.http_timeout),
            explorer_min_interval_ms=_int(
                "SNIFFER_EXPLORER_MIN_INTERVAL_MS", defaults.explorer_min_interval_ms
            ),
            dex_min_interval_ms=_int("SNIFFER_DEX_MIN_INTERVAL_MS", defaults.dex_min_interval_ms),
            social_min_interval_ms=_int(
                "SNIFFER_SOCIAL_MIN_INTERVAL_MS", defaults.social_min_interval_ms
            ),
            wallet_ttl_ms=_int("SNIFFER_WALLET_TTL_MS", defaults.wallet_ttl_ms),
            token_ttl_ms=_int("SNIFFER_TOKEN_TTL_MS", defaults.token_ttl_ms),
            social_ttl_ms=_int("SNIFFER_SOCIAL_TTL_MS", defaults.social_ttl_ms),
            cache_path=os.getenv("SNIFFER_CACHE_PATH") or None,
            log_level=os.getenv("SNIFFER_LOG_LEVEL", defaults.log_level),
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure le logging racine une seule fois au démarrage de l'application."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    # httpx logge chaque requête en INFO : trop bavard pour un dashboard
    logging.getLogger("httpx").setLevel(logging.WARNING)
