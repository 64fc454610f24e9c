"""Sniffer Web3 : agrégation de données d'identité et de marché on-chain."""

__version__ = "0.1.0"
