# src/services/summary_stream_service/app/main.py
import logging
import asyncio
import sys
from portools_common.logging_utils import setup_logging
from prometheus_fastapi_instrumentator import Instrumentator
from .consumer_manager import ConsumerManager
from .web import app as web_app

setup_logging()
logger = logging.getLogger(__name__)

async def main() -> int:
    """
    Runs the summary stream until it stops or a shutdown signal arrives.
    Returns the process exit code.
    """
    logger.info("Summary Stream Service starting up...")

    Instrumentator().instrument(web_app).expose(web_app)
    logger.info("Prometheus metrics exposed at /metrics")

    try:
        manager = ConsumerManager()
        return await manager.run()
    except Exception as e:
        logger.critical(f"Summary Stream Service encountered a critical error: {e}", exc_info=True)
        return 1
    finally:
        logger.info("Summary Stream Service has shut down.")

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
