"""
insights.py

Indicateurs dérivés d'un WalletAggregate : catégorie du wallet, fréquence de
trading, taux de succès, gas moyen, tokens préférés...

Tout est calculé à partir des données déjà agrégées, sans appel réseau.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from sniffer.models import TransactionRecord, WalletAggregate

DAY_MS = 24 * 60 * 60 * 1000


class WalletCategory(str, Enum):
    ACTIVE_TRADER = "Active Trader"
    REGULAR_USER = "Regular User"
    INDIVIDUAL = "Individual"
    LOW_ACTIVITY = "Low Activity"


class TradingFrequency(str, Enum):
    VERY_HIGH = "Very High"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    VERY_LOW = "Very Low"


class WalletInsights(BaseModel):
    address: Optional[str] = None
    category: WalletCategory
    trading_frequency: TradingFrequency
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    avg_gas_used: int
    avg_gas_price_gwei: Decimal
    avg_transaction_size_native: Decimal
    first_seen_block: Optional[int] = None
    last_activity_block: Optional[int] = None
    preferred_tokens: List[str]
    weekend_activity: bool
    diversification: int  # 0..100
    partial: bool = False


def _category(total_txs: int) -> WalletCategory:
    if total_txs > 1000:
        return WalletCategory.ACTIVE_TRADER
    if total_txs > 100:
        return WalletCategory.REGULAR_USER
    if total_txs < 10:
        return WalletCategory.LOW_ACTIVITY
    return WalletCategory.INDIVIDUAL


def _frequency_from_rate(txs_per_day: float) -> TradingFrequency:
    if txs_per_day >= 10:
        return TradingFrequency.VERY_HIGH
    if txs_per_day >= 5:
        return TradingFrequency.HIGH
    if txs_per_day >= 1:
        return TradingFrequency.MEDIUM
    if txs_per_day >= 0.1:
        return TradingFrequency.LOW
    return TradingFrequency.VERY_LOW


def _frequency_from_total(total_txs: int) -> TradingFrequency:
    if total_txs > 1000:
        return TradingFrequency.VERY_HIGH
    if total_txs > 500:
        return TradingFrequency.HIGH
    if total_txs > 100:
        return TradingFrequency.MEDIUM
    if total_txs > 20:
        return TradingFrequency.LOW
    return TradingFrequency.VERY_LOW


def _trading_frequency(transactions: List[TransactionRecord], total_txs: int) -> TradingFrequency:
    """Fréquence sur la fenêtre des transactions récupérées ; compteur total en repli."""

    if not transactions:
        return _frequency_from_total(total_txs)

    timestamps = [tx.timestamp_ms for tx in transactions]
    span_days = max(1.0, (max(timestamps) - min(timestamps)) / DAY_MS)
    return _frequency_from_rate(len(transactions) / span_days)


def _is_weekend(timestamp_ms: int) -> bool:
    # samedi = 5, dimanche = 6
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).weekday() >= 5


def build_wallet_insights(aggregate: WalletAggregate) -> WalletInsights:
    txs = aggregate.transactions
    wallet = aggregate.wallet
    total_txs = wallet.transaction_count if wallet else len(txs)

    failed = sum(1 for tx in txs if tx.is_error)

    avg_gas_used = round(sum(tx.gas_used for tx in txs) / len(txs)) if txs else 0
    avg_gas_price_gwei = (
        (Decimal(sum(tx.gas_price_wei for tx in txs)) / len(txs)).scaleb(-9).quantize(Decimal("0.01"))
        if txs
        else Decimal("0.00")
    )

    # Taille moyenne : uniquement les transactions avec une valeur non nulle
    valued = [tx.value_native for tx in txs if tx.value_native > 0]
    avg_size = sum(valued, Decimal(0)) / len(valued) if valued else Decimal(0)

    blocks = [tx.block_number for tx in txs if tx.block_number]

    return WalletInsights(
        address=wallet.address if wallet else None,
        category=_category(total_txs),
        trading_frequency=_trading_frequency(txs, total_txs),
        total_transactions=total_txs,
        successful_transactions=len(txs) - failed,
        failed_transactions=failed,
        avg_gas_used=avg_gas_used,
        avg_gas_price_gwei=avg_gas_price_gwei,
        avg_transaction_size_native=avg_size,
        first_seen_block=min(blocks) if blocks else None,
        last_activity_block=max(blocks) if blocks else None,
        preferred_tokens=[b.token_symbol for b in aggregate.token_balances[:3]],
        weekend_activity=any(_is_weekend(tx.timestamp_ms) for tx in txs),
        diversification=min(len(aggregate.token_balances) * 10, 100),
        partial=aggregate.partial,
    )
