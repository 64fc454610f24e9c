"""
social_client.py

Résolution des identités sociales d'un wallet.

Sources utilisées :
- thirdweb social (ENS, Farcaster, Lens...) : adresse -> profils
- ensdata : nom ENS -> adresse
- Zora : compteurs (followers, NFTs...) quand thirdweb ne les fournit pas
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sniffer.config import ENSDATA_BASE_URL, THIRDWEB_SOCIAL_BASE_URL
from sniffer.errors import UpstreamError, UpstreamErrorKind
from sniffer.services.normalizer import normalize_zora_user
from sniffer.services.upstream import UpstreamClient

logger = logging.getLogger(__name__)

ZORA_USER_ENDPOINTS = (
    "https://zora.co/api/users/{address}",
    "https://api.zora.co/v1/users/{address}",
    "https://api.zora.co/v2/users/{address}",
)


class SocialClient(UpstreamClient):
    name = "social"

    def __init__(
        self,
        base_url: str = THIRDWEB_SOCIAL_BASE_URL,
        *,
        client_id: Optional[str] = None,
        ens_base_url: str = ENSDATA_BASE_URL,
        zora_endpoints=ZORA_USER_ENDPOINTS,
        **kwargs: Any,
    ):
        headers = {"x-client-id": client_id} if client_id else None
        super().__init__(base_url, headers=headers, **kwargs)
        self.ens_base_url = ens_base_url.rstrip("/")
        self.zora_endpoints = tuple(zora_endpoints)

    async def resolve_address_to_profiles(self, address: str) -> List[Dict[str, Any]]:
        """Profils bruts thirdweb pour une adresse (liste vide si aucun)."""

        payload = await self.fetch(f"/v1/profiles/{address.strip()}")

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            data = payload.get("data")
            if data is None:
                return []
            if isinstance(data, list):
                return data
        raise UpstreamError(
            UpstreamErrorKind.INVALID_SHAPE, "liste de profils attendue", self.name
        )

    async def resolve_name_to_address(self, name: str) -> Optional[str]:
        """Nom ENS (ex. vitalik.eth) -> adresse, None si le nom ne résout pas."""

        try:
            payload = await self.fetch(f"{self.ens_base_url}/{name.strip().lower()}")
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise

        if not isinstance(payload, dict):
            return None
        address = payload.get("address")
        return str(address) if address else None

    async def fetch_zora_user(self, address: str) -> Optional[Dict[str, Any]]:
        """Essaie chaque endpoint Zora dans l'ordre ; None si aucun ne répond exploitable."""

        for template in self.zora_endpoints:
            url = template.format(address=address)
            try:
                payload = await self.fetch(url)
            except UpstreamError as e:
                logger.info("Zora : %s a échoué (%s)", url, e)
                continue

            user = normalize_zora_user(payload, address)
            if user is not None:
                return user

        logger.info("Zora : aucun endpoint exploitable pour %s", address)
        return None
