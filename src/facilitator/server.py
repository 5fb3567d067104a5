"""
x402 Facilitator Server
FastAPI application exposing verify/settle for the exact scheme
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import structlog

from src.config import FacilitatorConfig, configure_logging, load_config
from src.context import FacilitatorContext, build_context
from src.facilitator.dependencies import limiter
from src.facilitator.routers import general, x402

logger = structlog.get_logger()


def create_app(
    context: Optional[FacilitatorContext] = None,
    config: Optional[FacilitatorConfig] = None,
) -> FastAPI:
    """
    Build the facilitator app.

    With no context, one is built from configuration at startup and closed
    at shutdown; a supplied context is owned by the caller.
    """
    config = context.config if context is not None else (config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.context is None
        if owned:
            configure_logging(config)
            app.state.context = build_context(config)
        logger.info(
            "facilitator_starting",
            host=config.facilitator_host,
            port=config.facilitator_port,
            networks=config.networks,
            strategy=config.settlement_strategy,
        )
        yield
        logger.info("facilitator_shutting_down")
        if owned:
            await app.state.context.aclose()
            app.state.context = None

    app = FastAPI(
        title="x402 Facilitator",
        description="x402 exact-scheme (EIP-3009) payment verification and settlement",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.context = context
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(general.router)
    app.include_router(x402.router)
    return app


if __name__ == "__main__":
    import uvicorn

    config = load_config()
    uvicorn.run(
        create_app(config=config),
        host=config.facilitator_host,
        port=config.facilitator_port,
    )
