"""
known_tokens.py

Liste de tokens de l'écosystème Base interrogés quand l'utilisateur ne fait pas
de recherche, et mots-clés de recherche large pour compléter la couverture.

La liste brute est validée (format d'adresse) et dédoublonnée au chargement.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

RAW_KNOWN_BASE_TOKENS = [
    # Majeurs
    "0x4200000000000000000000000000000000000006",  # WETH
    "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",  # USDC
    "0x50c5725949a6f0c72e6c4a641f24049a917db0cb",  # DAI
    "0x2ae3f1ec7f1f5012cfeab0185bfc7aa3cf0dec22",  # cbETH
    "0xcbb7c0000ab88b473b1f5afd9ef808440eed33bf",  # cbBTC
    "0x2416092f143378750bb29b79ed961ab195cceea5",  # ezETH
    # Memecoins
    "0x1bc0c42215582d5a085795f4badbac3ff36d1bcb",  # CLANKER
    "0x532f27101965dd16442e59d40670faf5ebb142e4",  # BRETT
    "0xac1bd2486aaf3b5c0fc3fd868558b082a531b2b4",  # TOSHI
    "0x4ed4e862860bed51a9570b96d89af5e1b0efefed",  # DEGEN
    "0x22aF33FE49fD1Fa80c7149773dDe5890D3c76F3b",  # BNKR
    # DeFi
    "0x940181a94a35a4569e4529a3cdfb74e38fd98631",  # AERO
    "0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca",  # USDbC
    # Doublons volontairement tolérés dans la liste brute
    "0x532f27101965dd16442e59d40670faf5ebb142e4",  # BRETT
    "0x1bc0c42215582d5a085795f4badbac3ff36d1bcb",  # CLANKER
]

POPULAR_SEARCHES = [
    "base", "brett", "clanker", "toshi", "degen", "bankr", "aero", "aerodrome",
    "usdc", "weth", "cbbtc", "cbeth", "higher", "normie", "mochi", "based",
    "meme", "ai", "defi", "dao",
]

SEARCH_RESULTS_PER_QUERY = 4


def load_known_tokens(raw: Iterable[str]) -> List[str]:
    """Adresses valides, en minuscules, sans doublon, dans l'ordre d'origine."""

    seen = set()
    tokens: List[str] = []

    for address in raw:
        candidate = (address or "").strip()
        if not ADDRESS_RE.match(candidate):
            logger.warning("Token connu ignoré : adresse mal formée %r", address)
            continue
        lowered = candidate.lower()
        if lowered in seen:
            logger.debug("Token connu en double : %s", lowered)
            continue
        seen.add(lowered)
        tokens.append(lowered)

    return tokens


KNOWN_BASE_TOKENS = load_known_tokens(RAW_KNOWN_BASE_TOKENS)
