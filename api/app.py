"""FastAPI app factory and lifespan."""

import logging
import os
import time
from contextlib import asynccontextmanager

import config
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent.logging import attach_log_file, setup_logging, tagged
from . import routes

logger = logging.getLogger("sheetpilot")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Flags from api_server.py arrive through the environment
    setup_logging(verbose=bool(os.getenv("SHEETPILOT_VERBOSE")))
    run_id = os.getenv("SHEETPILOT_LOG_FILE")
    if run_id:
        path = attach_log_file(run_id)
        logger.info(f"[Server] Writing debug log to {path}", extra=tagged("server"))
    routes._start_time = time.time()
    if routes.controller is None:
        routes.controller = routes.create_controller()
    logger.info(
        f"[Server] Ready: provider={config.LLM_PROVIDER} model={config.SMART_MODEL}",
        extra=tagged("server"),
    )
    yield
    logger.info("[Server] Shutting down", extra=tagged("server"))


def create_app() -> FastAPI:
    app = FastAPI(
        title="SheetPilot API",
        description="Spreadsheet assistant: two-phase data selection and analysis over SSE",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(routes.router)
    return app
