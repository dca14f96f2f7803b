# src/services/summary_stream_service/app/consumer_manager.py
import logging
import signal
import asyncio
from typing import Optional

import uvicorn

from portools_common.change_feed import KafkaChangeFeed
from portools_common.checkpoint_repository import CheckpointRepository
from portools_common.config import SUMMARY_STREAM_CONSUMER_ID, SUMMARY_STREAM_WEB_PORT
from portools_common.summary_repository import SummaryRepository
from .orchestrator import StopReason, SummaryStreamOrchestrator
from .web import app as web_app

logger = logging.getLogger(__name__)


class ConsumerManager:
    """
    Runs the summary stream orchestrator alongside the health/metrics web
    server, and maps how the stream ended to a process exit code.
    """
    def __init__(self, orchestrator: Optional[SummaryStreamOrchestrator] = None, web_port: int = SUMMARY_STREAM_WEB_PORT):
        self._shutdown_event = asyncio.Event()
        self._web_port = web_port
        self.orchestrator = orchestrator or SummaryStreamOrchestrator(
            consumer_id=SUMMARY_STREAM_CONSUMER_ID,
            feed=KafkaChangeFeed(),
            checkpoint_store=CheckpointRepository(),
            summary_store=SummaryRepository(),
        )
        logger.info(f"ConsumerManager initialized for consumer '{self.orchestrator.consumer_id}'.")

    def _signal_handler(self, signum, frame):
        logger.info(f"Received shutdown signal: {signal.Signals(signum).name}. Initiating graceful shutdown...")
        self._shutdown_event.set()

    def request_shutdown(self):
        self._shutdown_event.set()

    @staticmethod
    def exit_code_for(reason: Optional[StopReason]) -> int:
        """0 only for a requested shutdown; any other end means the supervisor should restart us."""
        return 0 if reason == StopReason.SHUTDOWN_REQUESTED else 1

    async def run(self, serve_web: bool = True) -> int:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        server = None
        tasks = []
        stream_task = asyncio.create_task(self.orchestrator.run())
        if serve_web:
            server = uvicorn.Server(uvicorn.Config(web_app, host="0.0.0.0", port=self._web_port, log_config=None))
            tasks.append(asyncio.create_task(server.serve()))

        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        logger.info("ConsumerManager is running. Press Ctrl+C to exit.")
        await asyncio.wait({stream_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

        if stream_task.done():
            reason = stream_task.result()
            logger.error(f"Summary stream ended on its own ({reason.value}). Exiting for restart.")
        else:
            logger.info("Shutdown event received. Stopping all tasks...")
            self.orchestrator.stop()
            # an event interrupted mid-processing is not checkpointed and is redelivered on restart
            stream_task.cancel()
            await asyncio.gather(stream_task, return_exceptions=True)
            reason = StopReason.SHUTDOWN_REQUESTED

        shutdown_task.cancel()
        if server is not None:
            server.should_exit = True
        await asyncio.gather(shutdown_task, *tasks, return_exceptions=True)
        logger.info("All tasks have been successfully shut down.")
        return self.exit_code_for(reason)
