"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .errors import install_error_handlers
from .openai_client import OpenAIClient
from .routers.chat import router as chat_router
from .routers.speech import router as speech_router
from .schemas.chat import HealthResponse
from .services.assembler import ResponseAssembler
from .services.stores import (
    BlobStore,
    CorrelationStore,
    InMemoryBlobStore,
    InMemoryCorrelationStore,
)
from .services.text_generation import OpenAITextGenerator, TextGenerator
from .services.tts import (
    FailoverSpeechSynthesizer,
    OpenAISpeechProvider,
    SpeechSynthesizer,
    VonageSpeechProvider,
)

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    """Configure logging based on the LOG_LEVEL / LOG_FILE settings."""

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []

    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("voice_backend").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Provider request bodies are only interesting at DEBUG
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    else:
        logging.getLogger("httpx").setLevel(log_level)
        logging.getLogger("httpcore").setLevel(log_level)


def create_app(
    settings: Settings | None = None,
    *,
    text_generator: TextGenerator | None = None,
    synthesizer: SpeechSynthesizer | None = None,
    records: CorrelationStore | None = None,
    blobs: BlobStore | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    if settings is None:
        # Populate os.environ for anything reading it outside Settings
        load_dotenv()
        settings = get_settings()

    if configure_logging:
        _configure_logging(settings)

    openai_client = OpenAIClient(settings)

    if text_generator is None:
        text_generator = OpenAITextGenerator(
            openai_client,
            partial_window=settings.partial_window_seconds,
        )

    if synthesizer is None:
        providers = [
            VonageSpeechProvider(settings),
            OpenAISpeechProvider(openai_client, settings),
        ]
        if not settings.vonage_configured:
            logger.warning(
                "Vonage credentials not configured; speech will fall back to OpenAI TTS."
            )
        synthesizer = FailoverSpeechSynthesizer(providers)

    records = records or InMemoryCorrelationStore(
        retention_seconds=settings.correlation_retention_seconds
    )
    blobs = blobs or InMemoryBlobStore(max_entries=settings.audio_cache_max_entries)

    assembler = ResponseAssembler(
        text_generator,
        synthesizer,
        records,
        blobs,
        min_partial_chars=settings.min_partial_chars,
        dedup_ratio=settings.dedup_ratio,
    )

    cleanup_interval_seconds = settings.cleanup_interval_seconds
    cleanup_task: asyncio.Task | None = None

    async def _store_cleanup_loop() -> None:
        while True:
            try:
                await asyncio.sleep(cleanup_interval_seconds)
            except asyncio.CancelledError:
                raise
            try:
                await assembler.evict()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Store cleanup run failed: %s", exc)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal cleanup_task
        cleanup_task = asyncio.create_task(_store_cleanup_loop())
        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with suppress(asyncio.CancelledError):
                    await cleanup_task
            await assembler.shutdown()

            shutdown_generator = getattr(text_generator, "shutdown", None)
            if shutdown_generator is not None:
                await shutdown_generator()

            close_synthesizer = getattr(synthesizer, "aclose", None)
            try:
                if close_synthesizer is not None:
                    await asyncio.wait_for(close_synthesizer(), timeout=2.0)
                await asyncio.wait_for(openai_client.aclose(), timeout=2.0)
            except Exception as exc:
                logger.warning("Error closing provider clients: %s", exc)

    app = FastAPI(
        title="Voice Chat Backend",
        version="0.1.0",
        description="Chat replies with synthesized speech, delivered by polling.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.assembler = assembler
    app.state.text_generator = text_generator
    app.state.synthesizer = synthesizer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(chat_router)
    app.include_router(speech_router)

    @app.get("/api/health", tags=["health"], response_model=HealthResponse)
    async def healthcheck() -> HealthResponse:
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))

    return app


__all__ = ["create_app"]
