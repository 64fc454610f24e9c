"""
dex_client.py

Client DexScreener (API publique, sans clé) :

    https://api.dexscreener.com/latest/dex/search?q={query}
    https://api.dexscreener.com/latest/dex/tokens/{contractAddress}

Les paires renvoyées couvrent toutes les chaînes : on ne garde que celles de
la chaîne cible.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sniffer.config import DEFAULT_CHAIN_ID, DEFAULT_DEX_CHAIN, DEXSCREENER_BASE_URL
from sniffer.errors import UpstreamError, UpstreamErrorKind
from sniffer.services.upstream import UpstreamClient

logger = logging.getLogger(__name__)


class DexClient(UpstreamClient):
    name = "dexscreener"

    def __init__(
        self,
        base_url: str = DEXSCREENER_BASE_URL,
        *,
        chain: str = DEFAULT_DEX_CHAIN,
        chain_id: int = DEFAULT_CHAIN_ID,
        **kwargs: Any,
    ):
        super().__init__(base_url, **kwargs)
        self.chain = chain
        self.chain_id = chain_id

    def _unwrap(self, payload: Any) -> Any:
        if not isinstance(payload, dict):
            raise UpstreamError(
                UpstreamErrorKind.INVALID_SHAPE, "réponse qui n'est pas un objet", self.name
            )
        pairs = payload.get("pairs")
        if pairs is None:
            # token inconnu de DexScreener : pas une erreur
            return []
        if not isinstance(pairs, list):
            raise UpstreamError(
                UpstreamErrorKind.INVALID_SHAPE, "`pairs` n'est pas une liste", self.name
            )
        return pairs

    def is_target_chain(self, pair: Dict[str, Any]) -> bool:
        chain_id = str(pair.get("chainId") or "")
        return chain_id in (self.chain, str(self.chain_id))

    def filter_chain(self, pairs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [p for p in pairs if isinstance(p, dict) and self.is_target_chain(p)]

    async def search_pairs(self, query: str) -> List[Dict[str, Any]]:
        """Recherche plein texte, filtrée sur la chaîne cible."""

        pairs = await self.fetch("/latest/dex/search", {"q": query.strip()})
        kept = self.filter_chain(pairs)
        logger.debug("DexScreener : %d paires %s pour %r", len(kept), self.chain, query)
        return kept

    async def get_pairs_for_token(self, contract_address: str) -> List[Dict[str, Any]]:
        pairs = await self.fetch(f"/latest/dex/tokens/{contract_address.strip()}")
        return self.filter_chain(pairs)
