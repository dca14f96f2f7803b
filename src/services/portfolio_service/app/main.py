# src/services/portfolio_service/app/main.py
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from portools_common.health import create_health_router
from portools_common.kafka_utils import get_kafka_producer
from portools_common.logging_utils import correlation_id_var, generate_correlation_id, setup_logging
from portools_common.outbox_dispatcher import OutboxDispatcher
from prometheus_fastapi_instrumentator import Instrumentator

from .routers import portfolios

SERVICE_PREFIX = "PRT"
setup_logging()
logger = logging.getLogger(__name__)

# Application state to hold shared resources like the outbox dispatcher
app_state = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Starts the outbox dispatcher that publishes portfolio change events, and
    stops it (flushing the producer) on shutdown.
    """
    logger.info("Portfolio Service starting up...")
    try:
        producer = get_kafka_producer()
        dispatcher = OutboxDispatcher(kafka_producer=producer)
        app_state["kafka_producer"] = producer
        app_state["outbox_dispatcher"] = dispatcher
        app_state["outbox_task"] = asyncio.create_task(dispatcher.run())
        logger.info("Outbox dispatcher started.")
    except Exception:
        logger.critical("FATAL: Could not start the outbox dispatcher on startup.", exc_info=True)

    yield

    logger.info("Portfolio Service shutting down...")
    dispatcher = app_state.get("outbox_dispatcher")
    task = app_state.get("outbox_task")
    if dispatcher and task:
        dispatcher.stop()
        await asyncio.gather(task, return_exceptions=True)
    producer = app_state.get("kafka_producer")
    if producer:
        producer.flush(timeout=5)
    logger.info("Portfolio Service has shut down gracefully.")


app = FastAPI(
    title="Portools Portfolio API",
    description="Upload portfolios of lots as CSV and read back the portfolio and its derived summaries.",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Prometheus Metrics ---
Instrumentator().instrument(app).expose(app)
logger.info("Prometheus metrics exposed at /metrics")


# Correlation ID Middleware
@app.middleware("http")
async def add_correlation_id_middleware(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-Id") or request.headers.get("X-Correlation-ID")
    if not correlation_id:
        correlation_id = generate_correlation_id(SERVICE_PREFIX)

    token = correlation_id_var.set(correlation_id)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers["X-Correlation-Id"] = correlation_id
    return response


# Global Exception Handler
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catches any unhandled exceptions and returns a standardized 500 error response.
    """
    correlation_id = correlation_id_var.get()
    logger.critical(
        f"Unhandled exception for request {request.method} {request.url}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred. Please contact support.",
            "correlation_id": correlation_id,
        },
    )


# Writes go through Postgres and the outbox; Kafka is needed to publish them.
health_router = create_health_router('db', 'kafka')
app.include_router(health_router)

app.include_router(portfolios.router)
