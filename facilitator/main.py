import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from facilitator.config import Settings, settings
from facilitator.container import Container
from facilitator.errors import (
    DocumentNotFound,
    FacilitatorError,
    GenerationError,
    MediaReadError,
    TransportError,
)
from facilitator.logging_utils import setup_logging
from facilitator.routes import notes, responses, sessions

_STATUS_BY_ERROR = [
    (DocumentNotFound, 404),
    (MediaReadError, 400),
    (GenerationError, 502),
    (TransportError, 502),
]


def create_app(config: Settings | None = None, container: Container | None = None) -> FastAPI:
    config = config or (container.config if container else settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build and start the core components; tear them down on shutdown."""
        setup_logging(config.log_dir, config.log_level)
        os.makedirs(config.storage_root, exist_ok=True)
        app.state.container = container or Container(config)
        await app.state.container.init()
        try:
            yield
        finally:
            await app.state.container.close()

    app = FastAPI(
        title="facilitator",
        description="Live group facilitation: voice messages in, structured conversation prompts out",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sessions.router)
    app.include_router(notes.router)
    app.include_router(responses.router)

    @app.exception_handler(FacilitatorError)
    async def facilitator_error_handler(_request: Request, exc: FacilitatorError) -> JSONResponse:
        status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
        return JSONResponse(status_code=status, content={"detail": exc.description})

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # Serve stored media (blob URLs point here when public_base_url is set)
    app.mount("/files", StaticFiles(directory=config.storage_root, check_dir=False), name="files")

    return app


app = create_app()


def run() -> None:
    uvicorn.run("facilitator.main:app", host=settings.host, port=settings.port)
