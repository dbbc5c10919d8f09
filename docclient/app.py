from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docclient.application import build_sessions, configure_sessions
from docclient.core.settings import Settings, load_settings
from docclient.core.storage import KeyValueStore
from docclient.routes import account, trial


def create_app(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    registry = build_sessions(settings, store=store, transport=transport)
    configure_sessions(registry)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await registry.account.restore()
        yield
        await registry.aclose()

    app = FastAPI(title="Document Summary Client", version="0.1.0", lifespan=lifespan)
    app.state.sessions = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(trial.router, prefix="/api")
    app.include_router(account.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Document Summary Client",
                "docs": "/docs",
                "trial": "/api/trial/session",
                "account": "/api/account/session",
            }
        )

    return app


app = create_app()
