"""
deduplicator.py

Un seul TokenRecord par adresse de contrat (insensible à la casse).

On garde l'enregistrement qui maximise la clé de départage (volume 24h ou
liquidité USD, valeur absente = 0) ; à égalité le premier vu gagne. L'ordre de
sortie suit la première apparition de chaque adresse, d'où l'idempotence :
dedupe(dedupe(L, k), k) == dedupe(L, k).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List

from sniffer.models import TokenRecord


class TieBreak(str, Enum):
    VOLUME_24H = "volume_24h"
    LIQUIDITY_USD = "liquidity_usd"


def tie_break_value(record: TokenRecord, key: TieBreak) -> float:
    if key is TieBreak.VOLUME_24H:
        value = record.volume_24h_usd
        if value is None and record.dex_info is not None:
            value = record.dex_info.volume_by_window.h24
    else:
        value = record.liquidity_usd
    return value or 0.0


def dedupe(records: Iterable[TokenRecord], tie_break: TieBreak) -> List[TokenRecord]:
    best: Dict[str, TokenRecord] = {}

    for record in records:
        key = record.contract_address.lower()
        current = best.get(key)
        if current is None or tie_break_value(record, tie_break) > tie_break_value(current, tie_break):
            # remplacer une entrée existante garde sa position d'insertion
            best[key] = record

    return list(best.values())


def sort_by(records: Iterable[TokenRecord], key: TieBreak, limit: int = 0) -> List[TokenRecord]:
    """Tri décroissant sur la clé (stable), tronqué à `limit` si > 0."""

    ordered = sorted(records, key=lambda r: tie_break_value(r, key), reverse=True)
    return ordered[:limit] if limit > 0 else ordered
