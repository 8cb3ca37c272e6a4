"""
FastAPI server for the sales voice assistant.

Endpoints:
- GET /health: Health check
- GET /metrics: JSON metrics
- GET /config: Available voices, modes and languages
- POST /pipeline: Transcript in, reply (text, audio, highlights, sentiment) out
- POST /tts: Text in, MP3 data URL out
- GET /salesqa/stats: Corpus statistics
- POST /salesqa/clear-cache: Drop all cached matches
"""

import sys
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, Any
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import structlog
import uvicorn

from src.sales_assistant.config import get_config, init_config, ConfigError
from src.sales_assistant.corpus import CorpusUnavailableError
from src.sales_assistant.pipeline import PipelineRequest, ResponsePipeline, create_pipeline
from src.sales_assistant.tts import VOICES, to_data_url, voice_for_language

MODES = ["sales", "support"]
LANGUAGES = ["en-US", "es-ES", "fr-FR", "de-DE"]


# Initialize structured logging
def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_level != "DEBUG" else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

logger = structlog.get_logger(__name__)


@dataclass
class ServerMetrics:
    """Server-wide metrics."""
    start_time: float = field(default_factory=time.time)
    total_requests: int = 0
    database_replies: int = 0
    generative_replies: int = 0
    fallback_replies: int = 0
    errors: int = 0

    def record(self, source: str) -> None:
        if source == "database":
            self.database_replies += 1
        elif source in ("generative", "support"):
            self.generative_replies += 1
        elif source == "fallback":
            self.fallback_replies += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self.start_time, 2),
            "total_requests": self.total_requests,
            "database_replies": self.database_replies,
            "generative_replies": self.generative_replies,
            "fallback_replies": self.fallback_replies,
            "errors": self.errors,
        }


# Global metrics
metrics = ServerMetrics()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting sales assistant server...")

    try:
        config = init_config()
        configure_logging(config.log_level)

        pipeline = create_pipeline(config)
        if config.validate_model_on_startup:
            await pipeline.llm.validate_model()
        app.state.pipeline = pipeline

        logger.info(
            "Server ready",
            port=config.port,
            corpus_available=getattr(pipeline.matcher.store, "available", True),
        )

    except ConfigError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except SystemExit:
        raise
    except Exception as e:
        logger.error("Startup failed", error=str(e))
        sys.exit(1)

    yield

    logger.info("Shutting down server...")
    await app.state.pipeline.tts.stop()


# Create FastAPI app
app = FastAPI(
    title="Sales Voice Assistant",
    description="Curated-first sales replies with generative fallback",
    version="1.0.0",
    lifespan=lifespan,
)


def _pipeline(request: Request) -> ResponsePipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        pipeline = create_pipeline()
        request.app.state.pipeline = pipeline
    return pipeline


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(
        content={
            "status": "healthy",
            "timestamp": time.time(),
            "total_requests": metrics.total_requests,
        }
    )


@app.get("/metrics")
async def get_metrics() -> JSONResponse:
    """Metrics endpoint."""
    return JSONResponse(content=metrics.to_dict())


@app.get("/config")
async def get_voice_config() -> JSONResponse:
    return JSONResponse(content={"voices": VOICES, "modes": MODES, "languages": LANGUAGES})


@app.post("/pipeline")
async def run_pipeline(request: Request) -> JSONResponse:
    """
    Run one transcript through the reply pipeline.

    Degraded replies (fallback text, no audio, empty highlights) still return
    200. Only a pipeline failure returns 500.
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid JSON body"})

    try:
        pipeline_request = PipelineRequest.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "details": e.errors(include_url=False, include_context=False, include_input=False),
            },
        )

    metrics.total_requests += 1
    result = await _pipeline(request).run(pipeline_request)

    if not result.success:
        metrics.errors += 1
        return JSONResponse(status_code=500, content=result.to_dict())

    metrics.record(result.meta.get("source", ""))
    return JSONResponse(content=result.to_dict())


@app.post("/tts")
async def synthesize_speech(request: Request) -> JSONResponse:
    """
    Synthesize arbitrary text with the configured TTS provider.

    A synthesis failure still returns 200 with `audioUrl: null` so the client
    can fall back to local speech.
    """
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    text = str(body.get("text") or "").strip()
    if not text:
        return JSONResponse(status_code=400, content={"success": False, "error": "No text provided for TTS"})

    language = str(body.get("language") or "en-US")
    voice = voice_for_language(body.get("voice"), language)
    audio = await _pipeline(request).tts.synthesize(text, voice, language)

    if audio is None:
        logger.warning("TTS unavailable", voice=voice, language=language)
        return JSONResponse(
            content={
                "audioUrl": None,
                "voice": voice,
                "success": False,
                "error": "TTS service unavailable",
                "fallback": True,
            }
        )

    return JSONResponse(content={"audioUrl": to_data_url(audio), "voice": voice, "success": True})


@app.get("/salesqa/stats")
async def salesqa_stats(request: Request) -> JSONResponse:
    try:
        stats = await _pipeline(request).matcher.stats()
    except CorpusUnavailableError as e:
        logger.warning("Corpus stats unavailable", error=str(e))
        return JSONResponse(status_code=503, content={"success": False, "error": "Corpus unavailable"})

    return JSONResponse(
        content={
            "success": True,
            "totalQuestions": stats.total_questions,
            "categories": stats.categories,
        }
    )


@app.post("/salesqa/clear-cache")
async def salesqa_clear_cache(request: Request) -> JSONResponse:
    _pipeline(request).matcher.clear_cache()
    logger.info("Match cache cleared")
    return JSONResponse(content={"success": True, "message": "Cache cleared"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
    )
    metrics.errors += 1

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


def main() -> None:
    """Run the server."""
    config = get_config()
    configure_logging(config.log_level)

    logger.info("Starting server", port=config.port)

    uvicorn.run(
        "server.app:app",
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
