import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hammock.api import router
from hammock.core.config import Settings
from hammock.core.engine import RequestManager
from hammock.core.errors import StateSaveError
from hammock.core.state import StateManager
from hammock.models import CollectionItem, HttpResult

logger = logging.getLogger(__name__)


def completion_handler(store: StateManager):
    """
    Build the callback the request manager reports into. It runs on the event
    loop that owns the state, so it can attach results directly.
    """
    def on_complete(item: CollectionItem, result: HttpResult):
        item.attach_result(result)
        state = store.get()
        if result.error is not None and not result.cancelled:
            state.last_error = str(result.error)
        else:
            state.last_error = None

    return on_complete


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # without explicit settings the environment is read at startup, not at import
        config = settings or Settings.from_env()
        app.state.settings = config
        store = StateManager.load(config.state_path)
        manager = RequestManager(
            completion_handler(store),
            transport=transport,
            timeout=config.timeout_seconds,
            verify_ssl=config.verify_ssl,
        )
        app.state.store = store
        app.state.manager = manager
        logger.info("loaded state from %s", config.state_path)
        try:
            yield
        finally:
            await manager.aclose()
            try:
                store.shutdown()
            except StateSaveError as ex:
                logger.error("failed to save data: %s", ex)

    app = FastAPI(title="Hammock Engine", lifespan=lifespan)

    # The terminal frontend talks to us over localhost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/")
    def health_check():
        return {"status": "Hammock Engine Running"}

    return app


app = create_app()
