"""
normalizer.py

Convertit les JSON propres à chaque upstream en enregistrements canoniques
(TokenRecord, TransactionRecord, TokenTransferRecord, TokenBalanceRecord,
WalletSummary, SocialProfile).

Règles :
- les champs optionnels absents (liquidité, compteurs sociaux...) deviennent None ;
- les champs d'identité absents (adresse de contrat, hash) lèvent NormalizationError ;
- les montants en wei sont convertis en Decimal exact (18 décimales par défaut).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

from sniffer.errors import NormalizationError
from sniffer.models import (
    DexInfo,
    NativeBalance,
    PlatformType,
    SocialProfile,
    TokenBalanceRecord,
    TokenRecord,
    TokenTransferRecord,
    TransactionRecord,
    TxCount,
    TxCountsByWindow,
    WalletSummary,
    WindowStats,
)
from sniffer.units import NATIVE_DECIMALS, to_units

logger = logging.getLogger(__name__)

WINDOWS = ("m5", "h1", "h6", "h24")


class SourceKind(str, Enum):
    DEX_PAIR = "dex_pair"
    MARKET_COIN = "market_coin"
    EXPLORER_TRANSACTION = "explorer_transaction"
    EXPLORER_TOKEN_TRANSFER = "explorer_token_transfer"
    EXPLORER_TOKEN_BALANCE = "explorer_token_balance"
    SOCIAL_PROFILE = "social_profile"


# ---------- HELPERS ----------


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (ValueError, TypeError):
        return None


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        if value is None or value == "":
            return default
        return int(value)
    except (ValueError, TypeError):
        return default


def _require(raw: Dict[str, Any], field: str, what: str) -> str:
    value = raw.get(field)
    if value is None or str(value).strip() == "":
        raise NormalizationError(f"{what} : champ requis `{field}` absent")
    return str(value).strip()


def _decimals(raw: Any, context: str) -> int:
    """Décimales déclarées par le fournisseur ; 18 si absentes (hypothèse ERC-20 standard)."""

    if raw is None or str(raw).strip() == "":
        logger.debug("%s : décimales absentes, on suppose %d", context, NATIVE_DECIMALS)
        return NATIVE_DECIMALS
    try:
        return int(raw)
    except (ValueError, TypeError):
        logger.warning("%s : décimales invalides %r, on suppose %d", context, raw, NATIVE_DECIMALS)
        return NATIVE_DECIMALS


def _units(raw_value: Any, decimals: int, what: str):
    try:
        return to_units(raw_value if raw_value not in (None, "") else "0", decimals)
    except ValueError as e:
        raise NormalizationError(f"{what} : montant invalide {raw_value!r}") from e


def placeholder_image_url(symbol: str) -> str:
    """Image générée de façon déterministe à partir du symbole (jamais vide)."""

    return (
        f"https://ui-avatars.com/api/?name={quote(symbol or '?', safe='')}"
        "&background=6366f1&color=ffffff&size=40&bold=true"
    )


# ---------- TOKENS ----------


def _window_stats(raw: Any) -> WindowStats:
    raw = raw if isinstance(raw, dict) else {}
    return WindowStats(**{w: _safe_float(raw.get(w)) for w in WINDOWS})


def _tx_counts(raw: Any) -> TxCountsByWindow:
    raw = raw if isinstance(raw, dict) else {}
    counts: Dict[str, Optional[TxCount]] = {}
    for w in WINDOWS:
        entry = raw.get(w)
        if isinstance(entry, dict):
            counts[w] = TxCount(buys=_safe_int(entry.get("buys")), sells=_safe_int(entry.get("sells")))
        else:
            counts[w] = None
    return TxCountsByWindow(**counts)


def normalize_dex_pair(pair: Dict[str, Any], ecosystem: Optional[str] = None) -> TokenRecord:
    """Paire DexScreener -> TokenRecord (token de base de la paire)."""

    base_token = pair.get("baseToken")
    if not isinstance(base_token, dict):
        raise NormalizationError("paire DexScreener : `baseToken` absent")

    address = _require(base_token, "address", "paire DexScreener")
    symbol = base_token.get("symbol") or "UNKNOWN"
    name = base_token.get("name") or symbol

    info = pair.get("info") if isinstance(pair.get("info"), dict) else {}
    liquidity = pair.get("liquidity") if isinstance(pair.get("liquidity"), dict) else {}
    volume = pair.get("volume") if isinstance(pair.get("volume"), dict) else {}
    price_change = pair.get("priceChange") if isinstance(pair.get("priceChange"), dict) else {}

    dex_info = DexInfo(
        dex_id=str(pair.get("dexId") or "unknown"),
        pair_address=str(pair.get("pairAddress") or ""),
        liquidity_usd=_safe_float(liquidity.get("usd")),
        price_native=pair.get("priceNative"),
        volume_by_window=_window_stats(volume),
        tx_counts_by_window=_tx_counts(pair.get("txns")),
        pair_url=pair.get("url"),
    )

    return TokenRecord(
        id=address.lower(),
        symbol=symbol,
        name=name,
        image_url=info.get("imageUrl") or placeholder_image_url(symbol),
        price_usd=_safe_float(pair.get("priceUsd")),
        market_cap_usd=_safe_float(pair.get("marketCap")),
        fully_diluted_valuation_usd=_safe_float(pair.get("fdv")),
        volume_24h_usd=_safe_float(volume.get("h24")),
        price_change_pct_24h=_safe_float(price_change.get("h24")),
        contract_address=address,
        ecosystem=ecosystem or pair.get("chainId"),
        dex_info=dex_info,
    )


def normalize_market_coin(coin: Dict[str, Any], ecosystem: Optional[str] = None) -> TokenRecord:
    """Entrée de type CoinGecko (`current_price`, `fully_diluted_valuation`...) -> TokenRecord."""

    address = coin.get("contract_address")
    if not address and isinstance(coin.get("platforms"), dict) and ecosystem:
        address = coin["platforms"].get(ecosystem)
    if not address:
        raise NormalizationError("entrée marché : adresse de contrat absente")

    symbol = coin.get("symbol") or "UNKNOWN"

    return TokenRecord(
        id=str(address).lower(),
        symbol=symbol,
        name=coin.get("name") or symbol,
        image_url=coin.get("image") or placeholder_image_url(symbol),
        price_usd=_safe_float(coin.get("current_price")),
        market_cap_usd=_safe_float(coin.get("market_cap")),
        fully_diluted_valuation_usd=_safe_float(coin.get("fully_diluted_valuation")),
        volume_24h_usd=_safe_float(coin.get("total_volume")),
        price_change_pct_24h=_safe_float(coin.get("price_change_percentage_24h")),
        contract_address=str(address),
        ecosystem=ecosystem or coin.get("ecosystem"),
        dex_info=None,
    )


# ---------- EXPLORATEUR ----------


def normalize_transaction(tx: Dict[str, Any]) -> TransactionRecord:
    tx_hash = _require(tx, "hash", "transaction")
    value_wei = str(tx.get("value") or "0")
    gas_used = _safe_int(tx.get("gasUsed"))
    gas_price = _safe_int(tx.get("gasPrice"))

    return TransactionRecord(
        hash=tx_hash,
        from_address=str(tx.get("from") or ""),
        to_address=tx.get("to") or None,
        value_wei=value_wei,
        value_native=_units(value_wei, NATIVE_DECIMALS, f"transaction {tx_hash}"),
        gas_used=gas_used,
        gas_price_wei=gas_price,
        gas_cost_native=to_units(gas_used * gas_price, NATIVE_DECIMALS),
        timestamp_ms=_safe_int(tx.get("timeStamp")) * 1000,
        block_number=_safe_int(tx.get("blockNumber")),
        method_id=tx.get("methodId") or None,
        function_name=tx.get("functionName") or None,
        is_error=str(tx.get("isError", "0")) == "1",
    )


def normalize_token_transfer(transfer: Dict[str, Any]) -> TokenTransferRecord:
    tx_hash = _require(transfer, "hash", "transfert de token")
    contract = _require(transfer, "contractAddress", "transfert de token")
    decimals = _decimals(transfer.get("tokenDecimal"), f"transfert {tx_hash}")
    value_raw = str(transfer.get("value") or "0")

    return TokenTransferRecord(
        hash=tx_hash,
        from_address=str(transfer.get("from") or ""),
        to_address=transfer.get("to") or None,
        value_raw=value_raw,
        value=_units(value_raw, decimals, f"transfert {tx_hash}"),
        token_name=transfer.get("tokenName") or "Unknown Token",
        token_symbol=transfer.get("tokenSymbol") or "UNKNOWN",
        token_decimals=decimals,
        contract_address=contract,
        timestamp_ms=_safe_int(transfer.get("timeStamp")) * 1000,
        block_number=_safe_int(transfer.get("blockNumber")),
    )


def normalize_token_balance(raw: Dict[str, Any]) -> TokenBalanceRecord:
    contract = raw.get("contractAddress") or raw.get("address")
    if not contract:
        raise NormalizationError("solde de token : adresse de contrat absente")

    decimals = _decimals(raw.get("tokenDecimal"), f"solde {contract}")
    raw_balance = str(raw.get("balance") or "0")

    return TokenBalanceRecord(
        contract_address=str(contract),
        token_symbol=raw.get("tokenSymbol") or "UNKNOWN",
        token_name=raw.get("tokenName") or "Unknown Token",
        token_decimals=decimals,
        raw_balance=raw_balance,
        balance_formatted=_units(raw_balance, decimals, f"solde {contract}"),
    )


def build_wallet_summary(
    address: str,
    balance_wei: str,
    transaction_count: int,
    gas_price_wei: int,
    block_number: int,
) -> WalletSummary:
    return WalletSummary(
        address=address.lower(),
        native_balance=NativeBalance(
            wei=balance_wei,
            formatted=_units(balance_wei, NATIVE_DECIMALS, f"solde natif {address}"),
        ),
        transaction_count=transaction_count,
        gas_price_wei=gas_price_wei,
        block_number=block_number,
    )


# ---------- SOCIAL ----------


def normalize_social_profile(
    raw: Dict[str, Any], fallback_address: Optional[str] = None
) -> Optional[SocialProfile]:
    """Profil social -> SocialProfile ; None si la plateforme n'est pas prise en charge."""

    raw_type = str(raw.get("type") or "").lower()
    try:
        platform = PlatformType(raw_type)
    except ValueError:
        logger.debug("Plateforme sociale ignorée : %r", raw_type)
        return None

    metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
    address = raw.get("address") or metadata.get("address") or fallback_address
    if not address:
        raise NormalizationError(f"profil {platform.value} : adresse absente")

    handle = (
        raw.get("name")
        or metadata.get("handle")
        or metadata.get("username")
        or metadata.get("name")
        or str(address)
    )

    return SocialProfile(
        platform_type=platform,
        handle_or_name=str(handle),
        address=str(address),
        avatar_url=raw.get("avatar") or metadata.get("avatar") or None,
        bio=raw.get("bio") or metadata.get("bio") or None,
        metadata=dict(metadata),
    )


# Formes de réponse connues pour le profil utilisateur Zora, essayées dans l'ordre.


def _match_top_level_user(data: Any) -> Optional[Dict[str, Any]]:
    user = data.get("user") if isinstance(data, dict) else None
    return user if isinstance(user, dict) else None


def _match_result_user(data: Any) -> Optional[Dict[str, Any]]:
    result = data.get("result") if isinstance(data, dict) else None
    user = result.get("user") if isinstance(result, dict) else None
    return user if isinstance(user, dict) else None


def _match_data_user(data: Any) -> Optional[Dict[str, Any]]:
    inner = data.get("data") if isinstance(data, dict) else None
    user = inner.get("user") if isinstance(inner, dict) else None
    return user if isinstance(user, dict) else None


def _match_bare_user(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, dict) and any(
        k in data for k in ("address", "name", "username", "displayName")
    ):
        return data
    return None


ZORA_USER_MATCHERS: List[Callable[[Any], Optional[Dict[str, Any]]]] = [
    _match_top_level_user,
    _match_result_user,
    _match_data_user,
    _match_bare_user,
]


def match_zora_user(data: Any) -> Optional[Dict[str, Any]]:
    for matcher in ZORA_USER_MATCHERS:
        user = matcher(data)
        if user is not None:
            return user
    return None


def _first_count(user: Dict[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = user.get(key)
        if isinstance(value, list):
            return len(value)
        if value is not None and value != "":
            return _safe_int(value)
    return None


def normalize_zora_user(data: Any, address: str) -> Optional[Dict[str, Any]]:
    """Métadonnées Zora uniformisées (compteurs à None si absents)."""

    user = match_zora_user(data)
    if user is None:
        return None

    return {
        "address": user.get("address") or address,
        "name": user.get("name") or user.get("username") or user.get("displayName"),
        "avatar_url": user.get("avatarUrl") or user.get("avatar") or user.get("pfp"),
        "follower_count": _first_count(user, "follower_count", "followerCount", "followers"),
        "following_count": _first_count(user, "following_count", "followingCount", "following"),
        "nft_count": _first_count(user, "nft_count", "nftCount", "nfts"),
        "collection_count": _first_count(user, "collection_count", "collectionCount", "collections"),
        "profile_views": _first_count(user, "profile_views", "profileViews", "views"),
    }


# ---------- POINT D'ENTRÉE GÉNÉRIQUE ----------


def normalize(raw: Any, source_kind: SourceKind, **context: Any) -> List[Any]:
    """Normalise une réponse brute (objet ou liste d'objets) selon sa source."""

    items: Iterable[Any] = raw if isinstance(raw, list) else [raw]
    records: List[Any] = []

    for item in items:
        if not isinstance(item, dict):
            raise NormalizationError(f"{source_kind.value} : élément inattendu {type(item).__name__}")

        if source_kind is SourceKind.DEX_PAIR:
            records.append(normalize_dex_pair(item, context.get("ecosystem")))
        elif source_kind is SourceKind.MARKET_COIN:
            records.append(normalize_market_coin(item, context.get("ecosystem")))
        elif source_kind is SourceKind.EXPLORER_TRANSACTION:
            records.append(normalize_transaction(item))
        elif source_kind is SourceKind.EXPLORER_TOKEN_TRANSFER:
            records.append(normalize_token_transfer(item))
        elif source_kind is SourceKind.EXPLORER_TOKEN_BALANCE:
            records.append(normalize_token_balance(item))
        elif source_kind is SourceKind.SOCIAL_PROFILE:
            profile = normalize_social_profile(item, context.get("address"))
            if profile is not None:
                records.append(profile)

    return records
