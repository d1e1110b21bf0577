import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from meetlogger.context import AppContext
from meetlogger.routers.messages import create_messages_router
from meetlogger.routers.settings import create_settings_router
from meetlogger.routers.summaries import create_summaries_router
from meetlogger.services.artifacts import (
    ArtifactWriter,
    GoogleDocsArtifactWriter,
    LocalArtifactWriter,
)
from meetlogger.services.background import BackgroundService
from meetlogger.services.history import HistoryManager
from meetlogger.services.kv_store import JsonFileKeyValueStore, KeyValueStore
from meetlogger.services.logging_setup import configure_logging, parse_level, set_console_level
from meetlogger.services.model_discovery import ModelDiscovery
from meetlogger.services.session_log_store import SessionLogStore
from meetlogger.services.settings import PipelineSettings
from meetlogger.services.summarization import SummarizationService

VERSION = "0.1.0"


def load_config(config_path: str) -> dict:
    logger = logging.getLogger("meetlogger.boot")
    if not os.path.exists(config_path):
        logger.info("Boot: config_path missing=%s", config_path)
        return {}
    logger.info("Boot: loading config_path=%s", config_path)
    with open(config_path, "r", encoding="utf-8") as config_file:
        config = json.load(config_file)
    if not isinstance(config, dict):
        raise ValueError(f"{config_path} must contain a JSON object")
    logger.info("Boot: config keys=%s", sorted(config.keys()))
    return config


def build_artifact_writer(ctx: AppContext, settings: PipelineSettings) -> ArtifactWriter:
    if settings.artifact_target == "google_docs":
        return GoogleDocsArtifactWriter(
            settings.google_docs_token, timeout=settings.request_timeout_seconds
        )
    if settings.artifact_target != "local":
        logging.getLogger("meetlogger.boot").warning(
            "Boot: unknown artifact_target=%s, using local files", settings.artifact_target
        )
    return LocalArtifactWriter(ctx.artifacts_dir)


def create_app(
    data_dir: Optional[str] = None,
    *,
    kv_store: Optional[KeyValueStore] = None,
    artifact_writer: Optional[ArtifactWriter] = None,
    discovery: Optional[ModelDiscovery] = None,
    provider_factory=None,
    setup_logging: bool = True,
) -> FastAPI:
    cwd = os.getcwd()
    data_dir = data_dir or os.path.join(cwd, "data")
    ctx = AppContext(
        cwd=cwd,
        data_dir=data_dir,
        config_path=os.path.join(data_dir, "config.json"),
    )
    ctx.ensure_dirs()
    if setup_logging:
        configure_logging(ctx.logs_dir)
    logger = logging.getLogger("meetlogger.boot")
    logger.info("Boot: starting create_app data_dir=%s", ctx.data_dir)

    config = load_config(ctx.config_path)
    logging_config = config.get("logging") if isinstance(config.get("logging"), dict) else {}
    if setup_logging and "console_level" in logging_config:
        set_console_level(parse_level(logging_config["console_level"]))
    settings = PipelineSettings.from_config(config)
    logger.info(
        "Boot: max_logs=%d clip=%d history=%d artifacts=%s",
        settings.max_logs,
        settings.clip_utterances,
        settings.max_history,
        settings.artifact_target,
    )

    kv_store = kv_store or JsonFileKeyValueStore(ctx.store_path)
    session_logs = SessionLogStore(
        kv_store,
        max_logs=settings.max_logs,
        flush_delay=settings.flush_delay_seconds,
    )
    history = HistoryManager(
        kv_store,
        artifact_writer or build_artifact_writer(ctx, settings),
        max_history=settings.max_history,
    )
    summarization_service = SummarizationService(
        kv_store,
        session_logs,
        history,
        settings,
        discovery=discovery,
        provider_factory=provider_factory,
        prompts_dir=ctx.prompts_dir,
    )
    background = BackgroundService(session_logs, summarization_service, history)
    # Sessions must be back in memory before the first LOG is accepted.
    background.start()
    logger.info("Boot: background service ready")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        background.close()
        logger.info("Shutdown: pending session logs flushed")

    app = FastAPI(title="Meet Caption Logger", version=VERSION, lifespan=lifespan)
    app.state.ctx = ctx
    app.state.settings = settings
    app.state.background = background
    app.state.session_logs = session_logs
    app.state.history = history
    app.state.summarization = summarization_service

    app.include_router(create_messages_router(background))
    logger.info("Boot: messages router mounted")
    app.include_router(create_summaries_router(background, history))
    logger.info("Boot: summaries router mounted")
    app.include_router(create_settings_router(summarization_service, settings))
    logger.info("Boot: settings router mounted")

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "version": VERSION}

    logger.info("Boot: create_app complete")
    return app
