"""
errors.py

Taxonomie des erreurs de Sniffer.

- UpstreamError : levée par les clients HTTP (Etherscan, DexScreener, social).
- NormalizationError : levée par le normaliseur quand un champ d'identité manque.
- AggregateError : levée par l'agrégateur quand TOUTES les sources ont échoué.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class SnifferError(Exception):
    """Exception de base du projet."""

    pass


class ConfigurationError(SnifferError):
    """Configuration manquante ou invalide (clé API absente, etc.)."""

    pass


class InvalidAddressError(SnifferError):
    """Adresse EVM mal formée."""

    pass


class UpstreamErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    INVALID_SHAPE = "invalid_shape"


class UpstreamError(SnifferError):
    """Erreur d'un appel vers une API tierce."""

    def __init__(
        self,
        kind: UpstreamErrorKind,
        message: str,
        upstream: str = "upstream",
        status_code: Optional[int] = None,
    ):
        super().__init__(f"[{upstream}] {kind.value}: {message}")
        self.kind = kind
        self.upstream = upstream
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.kind in (
            UpstreamErrorKind.RATE_LIMITED,
            UpstreamErrorKind.TIMEOUT,
            UpstreamErrorKind.NETWORK_ERROR,
        ):
            return True
        # 5xx = transitoire ; 4xx et erreurs applicatives (status_code None) = définitives
        if self.kind is UpstreamErrorKind.HTTP_ERROR and self.status_code is not None:
            return self.status_code >= 500
        return False


class NormalizationErrorKind(str, Enum):
    UNEXPECTED_SHAPE = "unexpected_shape"


class NormalizationError(SnifferError):
    """Réponse impossible à convertir en enregistrement canonique."""

    def __init__(self, message: str, kind: NormalizationErrorKind = NormalizationErrorKind.UNEXPECTED_SHAPE):
        super().__init__(message)
        self.kind = kind


class AggregateErrorKind(str, Enum):
    ALL_SOURCES_FAILED = "all_sources_failed"


class AggregateError(SnifferError):
    """Seule erreur remontée à l'UI comme échec dur."""

    def __init__(
        self,
        message: str,
        failures: Optional[Dict[str, str]] = None,
        kind: AggregateErrorKind = AggregateErrorKind.ALL_SOURCES_FAILED,
    ):
        super().__init__(message)
        self.kind = kind
        self.failures: Dict[str, str] = failures or {}
