"""
units.py

Conversions d'unités : wei -> unité native, montants bruts -> montants décimaux.

On passe par Decimal avec une précision suffisante pour un uint256 (78 chiffres) :
aucune perte silencieuse, contrairement à un float.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Union

NATIVE_DECIMALS = 18
UINT256_DIGITS = 78

Number = Union[int, str, Decimal]


def to_units(raw: Number, decimals: int = NATIVE_DECIMALS) -> Decimal:
    """Convertit un entier brut (ex. wei) en unités décimales : raw / 10**decimals."""

    if decimals < 0:
        raise ValueError(f"decimals négatif : {decimals}")

    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS + decimals
        try:
            value = Decimal(str(raw).strip())
        except InvalidOperation as e:
            raise ValueError(f"Montant brut invalide : {raw!r}") from e
        return value.scaleb(-decimals)


def from_units(value: Number, decimals: int = NATIVE_DECIMALS) -> int:
    """Opération inverse de `to_units` : value * 10**decimals, en entier."""

    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS + decimals
        return int(Decimal(str(value)).scaleb(decimals))


def wei_to_native(raw: Number) -> Decimal:
    return to_units(raw, NATIVE_DECIMALS)


def format_amount(value: Decimal, places: int = 6) -> str:
    """Affichage à nombre de décimales fixe (ex. "1.000000")."""

    return f"{value:.{places}f}"


def parse_quantity(value: Any) -> int:
    """Quantité JSON-RPC ("0x1a") ou décimale ("26") -> int."""

    if isinstance(value, bool):
        raise ValueError(f"Quantité invalide : {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)
