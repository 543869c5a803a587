"""
FastAPI application entry point for the companion backend.
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from companion_backend.config import get_settings
from companion_backend.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Companion Catalog Backend", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
