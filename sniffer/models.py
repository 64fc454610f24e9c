"""
models.py

Enregistrements canoniques produits par le normaliseur.

Ce sont des objets-valeurs : aucune source ne les partage en mutation,
le cache n'en garde qu'une copie JSON.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------- TOKENS ----------


class WindowStats(BaseModel):
    """Valeurs par fenêtre glissante DexScreener."""

    m5: Optional[float] = None
    h1: Optional[float] = None
    h6: Optional[float] = None
    h24: Optional[float] = None


class TxCount(BaseModel):
    buys: int = 0
    sells: int = 0


class TxCountsByWindow(BaseModel):
    m5: Optional[TxCount] = None
    h1: Optional[TxCount] = None
    h6: Optional[TxCount] = None
    h24: Optional[TxCount] = None


class DexInfo(BaseModel):
    """Présent uniquement quand le token vient d'un fournisseur DEX."""

    dex_id: str
    pair_address: str
    liquidity_usd: Optional[float] = None
    price_native: Optional[str] = None
    volume_by_window: WindowStats = Field(default_factory=WindowStats)
    tx_counts_by_window: TxCountsByWindow = Field(default_factory=TxCountsByWindow)
    pair_url: Optional[str] = None


class TokenRecord(BaseModel):
    id: str  # adresse du contrat en minuscules
    symbol: str
    name: str
    image_url: str
    price_usd: Optional[float] = None
    market_cap_usd: Optional[float] = None
    fully_diluted_valuation_usd: Optional[float] = None
    volume_24h_usd: Optional[float] = None
    price_change_pct_24h: Optional[float] = None
    contract_address: str
    ecosystem: Optional[str] = None
    dex_info: Optional[DexInfo] = None

    @property
    def liquidity_usd(self) -> Optional[float]:
        return self.dex_info.liquidity_usd if self.dex_info else None


# ---------- EXPLORATEUR ----------


class TransactionRecord(BaseModel):
    hash: str
    from_address: str
    to_address: Optional[str] = None
    value_wei: str
    value_native: Decimal
    gas_used: int = 0
    gas_price_wei: int = 0
    gas_cost_native: Decimal = Decimal(0)
    timestamp_ms: int
    block_number: int
    method_id: Optional[str] = None
    function_name: Optional[str] = None
    is_error: bool = False


class TokenTransferRecord(BaseModel):
    hash: str
    from_address: str
    to_address: Optional[str] = None
    value_raw: str
    value: Decimal
    token_name: str
    token_symbol: str
    token_decimals: int
    contract_address: str
    timestamp_ms: int
    block_number: int


class TokenBalanceRecord(BaseModel):
    contract_address: str
    token_symbol: str
    token_name: str
    token_decimals: int
    raw_balance: str
    balance_formatted: Decimal


class NativeBalance(BaseModel):
    wei: str
    formatted: Decimal


class WalletSummary(BaseModel):
    address: str
    native_balance: NativeBalance
    transaction_count: int = 0
    gas_price_wei: int = 0
    block_number: int = 0

    @property
    def gas_price_gwei(self) -> Decimal:
        return Decimal(self.gas_price_wei).scaleb(-9)

    @property
    def is_active(self) -> bool:
        return self.transaction_count > 0 or self.native_balance.formatted > 0


class WalletAggregate(BaseModel):
    """Résultat composite d'un profil de wallet.

    `partial` est vrai dès qu'une sous-source a échoué : les champs absents
    valent alors None / [] et leur nom figure dans `failed_sources`.
    """

    wallet: Optional[WalletSummary] = None
    transactions: List[TransactionRecord] = Field(default_factory=list)
    token_balances: List[TokenBalanceRecord] = Field(default_factory=list)
    partial: bool = False
    failed_sources: List[str] = Field(default_factory=list)


# ---------- SOCIAL ----------


class PlatformType(str, Enum):
    ENS = "ens"
    FARCASTER = "farcaster"
    LENS = "lens"
    ZORA = "zora"
    BASE = "base"


class SocialProfile(BaseModel):
    platform_type: PlatformType
    handle_or_name: str
    address: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def profile_url(self) -> Optional[str]:
        if self.platform_type is PlatformType.FARCASTER:
            return f"https://warpcast.com/{self.handle_or_name}"
        if self.platform_type is PlatformType.LENS:
            return f"https://hey.xyz/u/{self.handle_or_name}"
        if self.platform_type is PlatformType.ENS:
            return f"https://app.ens.domains/{self.handle_or_name}"
        if self.platform_type is PlatformType.ZORA:
            return f"https://zora.co/{self.address}"
        return None
