"""Entrypoint for the FastAPI application."""

import os

import structlog
from dotenv import load_dotenv

# Load .env locally only (deployments inject env vars)
env_path = os.path.join(os.path.dirname(__file__), "../.env")
_env_loaded = os.path.exists(env_path)
if _env_loaded:
    load_dotenv(dotenv_path=os.path.abspath(env_path))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import claims, health, units
from .core.logging import configure_logging

LOGGER = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    if _env_loaded:
        LOGGER.debug("dotenv_loaded", path=os.path.abspath(env_path))
    app = FastAPI(title="FieldBill", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(units.router, prefix="/api")
    app.include_router(claims.router, prefix="/api")

    return app


app = create_app()
