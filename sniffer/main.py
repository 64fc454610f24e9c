from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sniffer import __version__
from sniffer.config import Settings, configure_logging
from sniffer.routes import social, tokens, wallet
from sniffer.services.data_aggregator import DataAggregator


def create_app(aggregator: Optional[DataAggregator] = None) -> FastAPI:
    """Application FastAPI ; l'agrégateur est construit une fois par processus."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.aggregator is None
        if owned:
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.aggregator = DataAggregator.from_settings(settings)
        try:
            yield
        finally:
            if owned:
                await app.state.aggregator.aclose()
                app.state.aggregator = None

    app = FastAPI(
        title="Sniffer Web3 API",
        version=__version__,
        description="Agrégation de profils de wallets, de tokens et d'identités sociales.",
        lifespan=lifespan,
    )
    app.state.aggregator = aggregator

    # CORS : le dashboard front est servi depuis un autre domaine
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check():
        return {"status": "ok", "app": "Sniffer Web3"}

    app.include_router(wallet.router)
    app.include_router(tokens.router)
    app.include_router(social.router)

    return app


app = create_app()
