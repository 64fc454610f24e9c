from fastapi import Request

from sniffer.services.data_aggregator import DataAggregator


def get_aggregator(request: Request) -> DataAggregator:
    """Agrégateur unique du processus, créé au démarrage de l'application."""
    return request.app.state.aggregator
