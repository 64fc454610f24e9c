"""
explorer_client.py

Client de l'explorateur de blocs (API Etherscan v2).

L'API v2 est unifiée pour toutes les chaînes EVM : la chaîne est choisie par
le paramètre `chainid` (Base = 8453). Toutes les actions passent par le même
endpoint, limité en débit, avec une clé API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sniffer.config import DEFAULT_CHAIN_ID, ETHERSCAN_BASE_URL
from sniffer.errors import ConfigurationError, UpstreamError, UpstreamErrorKind
from sniffer.services.upstream import UpstreamClient
from sniffer.units import parse_quantity

logger = logging.getLogger(__name__)

# Messages Etherscan signifiant "pas de données" : résultat vide, pas une erreur
EMPTY_RESULT_MESSAGES = (
    "no transactions found",
    "no token transfers found",
    "no records found",
    "no data found",
)

RATE_LIMIT_MESSAGES = (
    "rate limit",
    "max calls per sec",
)

MAX_END_BLOCK = 99999999


def _is_rate_limit(text: str) -> bool:
    lowered = text.lower()
    return any(m in lowered for m in RATE_LIMIT_MESSAGES)


def _is_empty(text: str) -> bool:
    lowered = text.lower()
    return any(m in lowered for m in EMPTY_RESULT_MESSAGES)


class ExplorerClient(UpstreamClient):
    name = "etherscan"

    def __init__(
        self,
        api_key: str,
        *,
        chain_id: int = DEFAULT_CHAIN_ID,
        api_url: str = ETHERSCAN_BASE_URL,
        **kwargs: Any,
    ):
        super().__init__("", **kwargs)
        self.api_key = api_key or ""
        self.chain_id = chain_id
        self.api_url = api_url

    def _get_api_key(self) -> str:
        """Clé API Etherscan, vérifiée à chaque appel (ConfigurationError si absente)."""

        if not self.api_key:
            raise ConfigurationError(
                "La variable d'environnement ETHERSCAN_API_KEY est manquante. "
                "Crée une clé sur Etherscan et ajoute-la à ton environnement."
            )
        return self.api_key

    def _build_params(
        self,
        module: str,
        action: str,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Construit les paramètres communs pour l'appel Etherscan."""

        params: Dict[str, Any] = {
            "chainid": self.chain_id,
            "module": module,
            "action": action,
            "apikey": self._get_api_key(),
        }

        if extra_params:
            params.update(extra_params)

        return params

    def _unwrap(self, payload: Any) -> Any:
        if not isinstance(payload, dict):
            raise UpstreamError(
                UpstreamErrorKind.INVALID_SHAPE, "réponse qui n'est pas un objet", self.name
            )

        # 1) Enveloppe classique : status / message / result
        if "status" in payload:
            status = str(payload.get("status"))
            message = str(payload.get("message") or "")
            result = payload.get("result")

            if status != "1":
                detail = f"{message} - {result}" if isinstance(result, str) else message
                if _is_rate_limit(detail):
                    raise UpstreamError(UpstreamErrorKind.RATE_LIMITED, detail, self.name)
                if _is_empty(detail):
                    logger.debug("Etherscan : réponse vide (%s)", detail)
                    return []
                raise UpstreamError(UpstreamErrorKind.HTTP_ERROR, detail, self.name)

            return [] if result is None else result

        # 2) Enveloppe JSON-RPC (module=proxy)
        if "jsonrpc" in payload:
            error = payload.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise UpstreamError(
                    UpstreamErrorKind.HTTP_ERROR, f"JSON-RPC : {message}", self.name
                )
            result = payload.get("result")
            if isinstance(result, str) and _is_rate_limit(result):
                raise UpstreamError(UpstreamErrorKind.RATE_LIMITED, result, self.name)
            return [] if result is None else result

        raise UpstreamError(
            UpstreamErrorKind.INVALID_SHAPE, "format de réponse inconnu", self.name
        )

    async def call(
        self, module: str, action: str, extra_params: Optional[Dict[str, Any]] = None
    ) -> Any:
        params = self._build_params(module, action, extra_params)
        logger.debug("Etherscan %s.%s %s", module, action, extra_params or {})
        return await self.fetch(self.api_url, params)

    # ---------- COMPTE ----------

    async def get_balance(self, address: str) -> str:
        """Solde natif en wei (chaîne décimale)."""

        result = await self.call(
            "account", "balance", {"address": address.lower(), "tag": "latest"}
        )
        return result if isinstance(result, str) else "0"

    async def get_transaction_list(
        self,
        address: str,
        page: int = 1,
        offset: int = 10,
        sort: str = "desc",
        start_block: int = 0,
        end_block: int = MAX_END_BLOCK,
    ) -> List[Dict[str, Any]]:
        result = await self.call(
            "account",
            "txlist",
            {
                "address": address.lower(),
                "startblock": start_block,
                "endblock": end_block,
                "page": page,
                "offset": offset,
                "sort": sort,
            },
        )
        return result if isinstance(result, list) else []

    async def get_token_transfers(
        self, address: str, page: int = 1, offset: int = 10, sort: str = "desc"
    ) -> List[Dict[str, Any]]:
        result = await self.call(
            "account",
            "tokentx",
            {"address": address.lower(), "page": page, "offset": offset, "sort": sort},
        )
        return result if isinstance(result, list) else []

    async def get_token_balance(self, address: str, contract_address: str) -> str:
        """Solde brut d'un token ERC-20 pour une adresse."""

        result = await self.call(
            "account",
            "tokenbalance",
            {
                "contractaddress": contract_address.lower(),
                "address": address.lower(),
                "tag": "latest",
            },
        )
        return result if isinstance(result, str) else "0"

    async def get_transaction_count(self, address: str) -> int:
        """Nombre de transactions (jusqu'à 10 000), nonce en repli."""

        result = await self.call(
            "account",
            "txlist",
            {
                "address": address.lower(),
                "startblock": 0,
                "endblock": MAX_END_BLOCK,
                "page": 1,
                "offset": 10000,
                "sort": "desc",
            },
        )
        if isinstance(result, list):
            return len(result)

        nonce = await self.call(
            "proxy", "eth_getTransactionCount", {"address": address.lower(), "tag": "latest"}
        )
        return self._quantity(nonce)

    # ---------- RÉSEAU ----------

    async def get_gas_price(self) -> int:
        return self._quantity(await self.call("proxy", "eth_gasPrice"))

    async def get_block_number(self) -> int:
        return self._quantity(await self.call("proxy", "eth_blockNumber"))

    def _quantity(self, value: Any) -> int:
        if value == []:
            return 0
        try:
            return parse_quantity(value)
        except (TypeError, ValueError) as e:
            raise UpstreamError(
                UpstreamErrorKind.INVALID_SHAPE, f"quantité invalide : {value!r}", self.name
            ) from e
