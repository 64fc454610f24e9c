"""
data_aggregator.py

Rassemble les données externes (explorateur, DexScreener, social) dans des
résultats composites, en tolérant les échecs partiels, et sert ces résultats
depuis le cache tant qu'ils sont frais.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from sniffer.config import Settings
from sniffer.errors import AggregateError, InvalidAddressError, SnifferError, UpstreamError
from sniffer.models import (
    PlatformType,
    SocialProfile,
    TokenBalanceRecord,
    TokenRecord,
    TokenTransferRecord,
    TransactionRecord,
    WalletAggregate,
    WalletSummary,
)
from sniffer.services.cache import CacheLayer
from sniffer.services.deduplicator import TieBreak, dedupe, sort_by
from sniffer.services.dex_client import DexClient
from sniffer.services.explorer_client import ExplorerClient
from sniffer.services.known_tokens import (
    ADDRESS_RE,
    KNOWN_BASE_TOKENS,
    POPULAR_SEARCHES,
    SEARCH_RESULTS_PER_QUERY,
)
from sniffer.services.normalizer import (
    SourceKind,
    build_wallet_summary,
    normalize,
    normalize_token_balance,
)
from sniffer.services.social_client import SocialClient

logger = logging.getLogger(__name__)

MAX_TOKEN_RESULTS = 100
MAX_TRENDING_RESULTS = 50
WALLET_TRANSACTIONS = 50
TOKEN_TRANSFERS_SCANNED = 100
MAX_TOKEN_BALANCES = 10
MAX_PAGE_SIZE = 100


def validate_address(address: str) -> str:
    candidate = (address or "").strip()
    if not ADDRESS_RE.match(candidate):
        raise InvalidAddressError(f"Adresse EVM invalide : {address!r}")
    return candidate.lower()


def wallet_cache_key(address: str) -> str:
    return f"wallet_profiler_{address.lower()}"


def token_cache_key(search: Optional[str], trending: bool) -> str:
    if search and search.strip():
        return f"tokens:search:{search.strip().lower()}"
    return "tokens:trending" if trending else "tokens:all"


def social_cache_key(address: str) -> str:
    return f"social:{address.lower()}"


def _page_bounds(page: int, offset: int) -> Tuple[int, int]:
    return max(page, 1), min(max(offset, 1), MAX_PAGE_SIZE)


# ---------- GROUPE D'APPELS PARALLÈLES ----------


@dataclass
class Outcome:
    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(calls: Dict[str, Awaitable[Any]]) -> Dict[str, Outcome]:
    """Attend TOUS les appels (succès ou échec) et renvoie un résultat par nom.

    Seules les erreurs métier (SnifferError) sont absorbées ; une annulation de
    l'appelant annule tous les appels en cours et se propage.
    """

    names = list(calls)
    results = await asyncio.gather(*calls.values(), return_exceptions=True)

    outcomes: Dict[str, Outcome] = {}
    for name, result in zip(names, results):
        if isinstance(result, (SnifferError, asyncio.CancelledError)):
            outcomes[name] = Outcome(name, error=result)
        elif isinstance(result, BaseException):
            raise result
        else:
            outcomes[name] = Outcome(name, value=result)
    return outcomes


def _failures(outcomes: Dict[str, Outcome]) -> Dict[str, str]:
    return {n: str(o.error) for n, o in outcomes.items() if not o.ok}


def _raise_if_all_failed(outcomes: Dict[str, Outcome], what: str) -> None:
    failures = _failures(outcomes)
    if outcomes and len(failures) == len(outcomes):
        raise AggregateError(f"{what} : toutes les sources ont échoué", failures=failures)
    for name, reason in failures.items():
        logger.warning("%s : source %s indisponible (%s)", what, name, reason)


class DataAggregator:
    """
    Point d'entrée de l'UI :
    - get_wallet_aggregate : solde, transactions, soldes de tokens d'un wallet
    - get_token_list : tokens de l'écosystème (recherche, tendance ou liste large)
    - get_social_profiles : identités sociales d'une adresse ou d'un nom ENS

    Les résultats réussis (même partiels) sont mis en cache ; les échecs jamais.
    """

    def __init__(
        self,
        explorer: ExplorerClient,
        dex: DexClient,
        social: SocialClient,
        cache: CacheLayer,
        settings: Optional[Settings] = None,
        known_tokens: Sequence[str] = KNOWN_BASE_TOKENS,
        popular_searches: Sequence[str] = POPULAR_SEARCHES,
    ):
        self.explorer = explorer
        self.dex = dex
        self.social = social
        self.cache = cache
        self.settings = settings or Settings()
        self.known_tokens = list(known_tokens)
        self.popular_searches = list(popular_searches)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DataAggregator":
        explorer = ExplorerClient(
            settings.etherscan_api_key,
            chain_id=settings.chain_id,
            api_url=settings.etherscan_base_url,
            timeout=settings.http_timeout,
            min_interval_ms=settings.explorer_min_interval_ms,
        )
        dex = DexClient(
            settings.dexscreener_base_url,
            chain=settings.dex_chain,
            chain_id=settings.chain_id,
            timeout=settings.http_timeout,
            min_interval_ms=settings.dex_min_interval_ms,
        )
        social = SocialClient(
            settings.social_base_url,
            client_id=settings.thirdweb_client_id,
            ens_base_url=settings.ens_base_url,
            timeout=settings.http_timeout,
            min_interval_ms=settings.social_min_interval_ms,
        )
        return cls(explorer, dex, social, CacheLayer(settings.cache_path), settings)

    async def aclose(self) -> None:
        await asyncio.gather(self.explorer.aclose(), self.dex.aclose(), self.social.aclose())
        self.cache.close()

    # ---------- WALLET ----------

    async def _network_value(self, call: Callable[[], Awaitable[int]], what: str) -> int:
        """Donnée réseau (gas, bloc) : 0 si indisponible, le wallet reste exploitable."""

        try:
            return await call()
        except UpstreamError as e:
            logger.warning("%s indisponible, 0 par défaut (%s)", what, e)
            return 0

    async def _wallet_summary(self, address: str) -> WalletSummary:
        # solde et nombre de transactions sont requis ; gas et bloc sont optionnels
        balance = await self.explorer.get_balance(address)
        transaction_count = await self.explorer.get_transaction_count(address)
        gas_price = await self._network_value(self.explorer.get_gas_price, "prix du gas")
        block_number = await self._network_value(self.explorer.get_block_number, "numéro de bloc")
        return build_wallet_summary(address, balance, transaction_count, gas_price, block_number)

    async def _transactions(
        self, address: str, page: int = 1, offset: int = WALLET_TRANSACTIONS
    ) -> List[TransactionRecord]:
        raw = await self.explorer.get_transaction_list(address, page=page, offset=offset)
        return normalize(raw, SourceKind.EXPLORER_TRANSACTION)

    async def _token_transfers(
        self, address: str, page: int = 1, offset: int = TOKEN_TRANSFERS_SCANNED
    ) -> List[TokenTransferRecord]:
        raw = await self.explorer.get_token_transfers(address, page=page, offset=offset)
        return normalize(raw, SourceKind.EXPLORER_TOKEN_TRANSFER)

    async def _token_balances(self, address: str) -> List[TokenBalanceRecord]:
        """Tokens découverts via l'historique de transferts, puis solde réel de chacun."""

        tokens: Dict[str, TokenTransferRecord] = {}
        for transfer in await self._token_transfers(address):
            contract = transfer.contract_address.lower()
            if contract not in tokens:
                tokens[contract] = transfer
            if len(tokens) >= MAX_TOKEN_BALANCES:
                break

        balances: List[TokenBalanceRecord] = []
        for contract, transfer in tokens.items():
            raw_balance = await self.explorer.get_token_balance(address, contract)
            balances.append(
                normalize_token_balance(
                    {
                        "contractAddress": contract,
                        "tokenName": transfer.token_name,
                        "tokenSymbol": transfer.token_symbol,
                        "tokenDecimal": transfer.token_decimals,
                        "balance": raw_balance,
                    }
                )
            )
        return balances

    async def aggregate_wallet_profile(self, address: str) -> WalletAggregate:
        address = validate_address(address)

        # 1) Les trois sous-appels en parallèle, on attend qu'ils aient tous fini
        outcomes = await settle_all(
            {
                "wallet": self._wallet_summary(address),
                "transactions": self._transactions(address),
                "token_balances": self._token_balances(address),
            }
        )

        # 2) Succès partiel autorisé tant qu'une source a répondu
        _raise_if_all_failed(outcomes, f"wallet {address}")
        failed = [name for name, o in outcomes.items() if not o.ok]

        return WalletAggregate(
            wallet=outcomes["wallet"].value,
            transactions=outcomes["transactions"].value or [],
            token_balances=outcomes["token_balances"].value or [],
            partial=bool(failed),
            failed_sources=failed,
        )

    async def get_wallet_aggregate(self, address: str, force_refresh: bool = False) -> WalletAggregate:
        address = validate_address(address)
        key = wallet_cache_key(address)

        if not force_refresh:
            entry = self.cache.get(key)
            if entry is not None:
                return WalletAggregate.model_validate(entry.payload)

        aggregate = await self.aggregate_wallet_profile(address)
        self.cache.put(key, aggregate.model_dump(mode="json"), self.settings.wallet_ttl_ms)
        return aggregate

    # Pages d'historique : pas de cache, une seule source

    async def get_transactions(
        self, address: str, page: int = 1, offset: int = 10
    ) -> List[TransactionRecord]:
        address = validate_address(address)
        page, offset = _page_bounds(page, offset)
        outcomes = await settle_all({"transactions": self._transactions(address, page, offset)})
        _raise_if_all_failed(outcomes, f"transactions {address}")
        return outcomes["transactions"].value

    async def get_token_transfers(
        self, address: str, page: int = 1, offset: int = 10
    ) -> List[TokenTransferRecord]:
        address = validate_address(address)
        page, offset = _page_bounds(page, offset)
        outcomes = await settle_all({"transfers": self._token_transfers(address, page, offset)})
        _raise_if_all_failed(outcomes, f"transferts {address}")
        return outcomes["transfers"].value

    # ---------- TOKENS ----------

    async def _best_pair_for_token(self, address: str, key: TieBreak) -> Optional[TokenRecord]:
        pairs = await self.dex.get_pairs_for_token(address)
        records = [
            r
            for r in normalize(pairs, SourceKind.DEX_PAIR, ecosystem=self.dex.chain)
            if r.id == address.lower()
        ]
        if not records:
            return None
        return sort_by(records, key)[0]

    async def _search(self, query: str, limit: int = 0) -> List[TokenRecord]:
        pairs = await self.dex.search_pairs(query)
        records = dedupe(
            normalize(pairs, SourceKind.DEX_PAIR, ecosystem=self.dex.chain), TieBreak.VOLUME_24H
        )
        return records[:limit] if limit > 0 else records

    async def aggregate_token_search(
        self, query: Optional[str] = None, trending: bool = False
    ) -> List[TokenRecord]:
        # 1) Recherche explicite
        if query and query.strip():
            outcomes = await settle_all({"search": self._search(query)})
            _raise_if_all_failed(outcomes, f"recherche {query!r}")
            return sort_by(outcomes["search"].value, TieBreak.LIQUIDITY_USD, MAX_TOKEN_RESULTS)

        # 2) Tendance : tokens connus, meilleure paire au volume
        if trending:
            outcomes = await settle_all(
                {f"token:{a}": self._best_pair_for_token(a, TieBreak.VOLUME_24H) for a in self.known_tokens}
            )
            _raise_if_all_failed(outcomes, "tokens tendance")
            records = [o.value for o in outcomes.values() if o.ok and o.value is not None]
            return sort_by(dedupe(records, TieBreak.VOLUME_24H), TieBreak.VOLUME_24H, MAX_TRENDING_RESULTS)

        # 3) Liste large : tokens connus + recherches par mots-clés
        calls: Dict[str, Awaitable[Any]] = {
            f"token:{a}": self._best_pair_for_token(a, TieBreak.LIQUIDITY_USD) for a in self.known_tokens
        }
        for q in self.popular_searches:
            calls[f"search:{q}"] = self._search(q, limit=SEARCH_RESULTS_PER_QUERY)

        outcomes = await settle_all(calls)
        _raise_if_all_failed(outcomes, "liste de tokens")

        known: List[TokenRecord] = []
        searched: List[TokenRecord] = []
        for name, outcome in outcomes.items():
            if not outcome.ok or outcome.value is None:
                continue
            if name.startswith("token:"):
                known.append(outcome.value)
            else:
                searched.extend(outcome.value)

        merged = dedupe(known + searched, TieBreak.LIQUIDITY_USD)
        logger.info(
            "Liste de tokens : %d connus + %d recherchés -> %d uniques",
            len(known),
            len(searched),
            len(merged),
        )
        return sort_by(merged, TieBreak.LIQUIDITY_USD, MAX_TOKEN_RESULTS)

    async def get_token_list(
        self,
        search: Optional[str] = None,
        trending: bool = False,
        force_refresh: bool = False,
    ) -> List[TokenRecord]:
        key = token_cache_key(search, trending)

        if not force_refresh:
            entry = self.cache.get(key)
            if entry is not None:
                return [TokenRecord.model_validate(item) for item in entry.payload]

        tokens = await self.aggregate_token_search(search, trending)
        self.cache.put(key, [t.model_dump(mode="json") for t in tokens], self.settings.token_ttl_ms)
        return tokens

    # ---------- SOCIAL ----------

    async def _resolve_target(self, address_or_name: str) -> str:
        target = (address_or_name or "").strip()
        if ADDRESS_RE.match(target):
            return target.lower()
        if "." not in target:
            raise InvalidAddressError(f"Ni adresse EVM ni nom ENS : {address_or_name!r}")

        outcomes = await settle_all({"ens": self.social.resolve_name_to_address(target)})
        _raise_if_all_failed(outcomes, f"résolution {target}")
        address = outcomes["ens"].value
        if not address:
            raise InvalidAddressError(f"Nom non résolu : {target}")
        return validate_address(address)

    async def _profiles(self, address: str) -> List[SocialProfile]:
        raw = await self.social.resolve_address_to_profiles(address)
        profiles: List[SocialProfile] = normalize(raw, SourceKind.SOCIAL_PROFILE, address=address)

        enriched: List[SocialProfile] = []
        for profile in profiles:
            # un compteur à 0 est une vraie valeur : pas d'enrichissement
            has_followers = any(
                profile.metadata.get(k) is not None
                for k in ("follower_count", "followerCount", "followers")
            )
            if profile.platform_type is PlatformType.ZORA and not has_followers:
                user = await self.social.fetch_zora_user(profile.address)
                if user:
                    extra = {k: v for k, v in user.items() if v is not None}
                    profile = profile.model_copy(update={"metadata": {**profile.metadata, **extra}})
            enriched.append(profile)
        return enriched

    async def get_social_profiles(
        self, address_or_name: str, force_refresh: bool = False
    ) -> List[SocialProfile]:
        address = await self._resolve_target(address_or_name)
        key = social_cache_key(address)

        if not force_refresh:
            entry = self.cache.get(key)
            if entry is not None:
                return [SocialProfile.model_validate(item) for item in entry.payload]

        outcomes = await settle_all({"profiles": self._profiles(address)})
        _raise_if_all_failed(outcomes, f"profils sociaux {address}")
        profiles = outcomes["profiles"].value

        self.cache.put(key, [p.model_dump(mode="json") for p in profiles], self.settings.social_ttl_ms)
        return profiles
