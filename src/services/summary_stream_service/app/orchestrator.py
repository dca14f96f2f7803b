# src/services/summary_stream_service/app/orchestrator.py
import asyncio
import logging
from enum import Enum
from typing import Iterable, Optional

from portools_common.change_feed import ChangeEvent, ChangeFeed, OperationType, ResumeToken
from portools_common.checkpoint_repository import CheckpointStore
from portools_common.exceptions import ChangeFeedError
from portools_common.logging_utils import correlation_id_var, generate_correlation_id
from portools_common.models import Portfolio
from portools_common.monitoring import (
    event_processing_timer,
    observe_checkpoint_write,
    observe_stream_event,
    observe_view_write,
)
from portools_common.summarizer import SummaryError, summarize
from portools_common.summary_repository import SummaryStore
from portools_common.summary_views import DEFAULT_VIEWS, SummaryView

logger = logging.getLogger(__name__)

SUPPORTED_OPERATIONS = (OperationType.INSERT, OperationType.REPLACE)


class OrchestratorState(str, Enum):
    STARTING = "STARTING"
    CONSUMING = "CONSUMING"
    PROCESSING = "PROCESSING"
    CHECKPOINTING = "CHECKPOINTING"
    STOPPED = "STOPPED"


class StopReason(str, Enum):
    STARTUP_FAILED = "STARTUP_FAILED"
    FEED_EXHAUSTED = "FEED_EXHAUSTED"
    FEED_ERROR = "FEED_ERROR"
    SHUTDOWN_REQUESTED = "SHUTDOWN_REQUESTED"


class SummaryStreamOrchestrator:
    """
    Keeps the derived summary views in step with the portfolio change feed.

    For each event: recompute every view from the full portfolio and overwrite
    it, then checkpoint the feed position. The checkpoint is written after the
    view writes were attempted, whether or not they succeeded, so one bad event
    cannot wedge the stream. Failed views self-correct on the portfolio's next
    change.

    Only one orchestrator may run per consumer_id.
    """
    def __init__(
        self,
        consumer_id: str,
        feed: ChangeFeed,
        checkpoint_store: CheckpointStore,
        summary_store: SummaryStore,
        views: Iterable[SummaryView] = DEFAULT_VIEWS,
        service_prefix: str = "SUM",
    ):
        self.consumer_id = consumer_id
        self._feed = feed
        self._checkpoint_store = checkpoint_store
        self._summary_store = summary_store
        self._views = tuple(views)
        self._service_prefix = service_prefix
        self._running = True
        self.state = OrchestratorState.STARTING
        self.stop_reason: Optional[StopReason] = None
        # last position handed to the checkpoint store, stored or not
        self.position: Optional[ResumeToken] = None

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug(f"Summary stream {self.state.value} -> {state.value}", extra={"consumer_id": self.consumer_id})
        self.state = state

    def stop(self) -> None:
        """
        Asks the loop to stop before its next feed read. An event already being
        processed is finished and checkpointed first, unless the caller also
        cancels the run task, in which case that event is not checkpointed and is
        redelivered on restart.
        """
        logger.info("Summary stream shutdown requested.", extra={"consumer_id": self.consumer_id})
        self._running = False

    async def run(self) -> StopReason:
        reason = None
        try:
            reason = await self._start()
            if reason is None:
                reason = await self._consume()
        finally:
            self.stop_reason = reason
            self._transition(OrchestratorState.STOPPED)
            await self._feed.close()
        logger.info(
            "Summary stream stopped.",
            extra={"consumer_id": self.consumer_id, "reason": reason.value},
        )
        return reason

    async def _start(self) -> Optional[StopReason]:
        self._transition(OrchestratorState.STARTING)
        try:
            checkpoint = await self._checkpoint_store.get_checkpoint(self.consumer_id)
            await self._feed.open(resume_after=checkpoint)
        except Exception:
            logger.critical(
                "Could not start the summary stream.",
                extra={"consumer_id": self.consumer_id},
                exc_info=True,
            )
            return StopReason.STARTUP_FAILED

        self.position = checkpoint
        logger.info(
            "Summary stream started.",
            extra={
                "consumer_id": self.consumer_id,
                "resume_after": checkpoint.to_document() if checkpoint else None,
                "views": [view.kind for view in self._views],
            },
        )
        return None

    async def _consume(self) -> StopReason:
        while self._running:
            if not self._feed.is_alive:
                logger.error("Change feed is no longer alive.", extra={"consumer_id": self.consumer_id})
                return StopReason.FEED_EXHAUSTED

            self._transition(OrchestratorState.CONSUMING)
            try:
                event = await self._feed.next_event()
            except ChangeFeedError:
                logger.error(
                    "Change feed failed; stopping the summary stream.",
                    extra={"consumer_id": self.consumer_id},
                    exc_info=True,
                )
                return StopReason.FEED_ERROR

            if event is None:
                continue

            await self.handle_event(event)

        return StopReason.SHUTDOWN_REQUESTED

    async def handle_event(self, event: ChangeEvent) -> None:
        """Processes one event and checkpoints the feed position after it."""
        token = correlation_id_var.set(generate_correlation_id(self._service_prefix))
        try:
            self._transition(OrchestratorState.PROCESSING)
            observe_stream_event(event.operation.value)
            await self._process(event)

            self._transition(OrchestratorState.CHECKPOINTING)
            await self._checkpoint()
        finally:
            correlation_id_var.reset(token)

    async def _process(self, event: ChangeEvent) -> None:
        if event.operation not in SUPPORTED_OPERATIONS or event.full_document is None:
            logger.warning(
                "Skipping unsupported change event.",
                extra={
                    "portfolio_id": event.portfolio_id,
                    "operation": event.operation.value,
                    "has_full_document": event.full_document is not None,
                },
            )
            return

        portfolio = event.full_document
        with event_processing_timer():
            results = await asyncio.gather(*(self._apply_view(view, portfolio) for view in self._views))
        logger.info(
            "Processed portfolio change.",
            extra={
                "portfolio_id": portfolio.id,
                "operation": event.operation.value,
                "views_written": sum(results),
                "views_failed": len(results) - sum(results),
            },
        )

    async def _apply_view(self, view: SummaryView, portfolio: Portfolio) -> bool:
        """Recomputes and stores one view. Failures are logged and reported as False."""
        log_extra = {"portfolio_id": portfolio.id, "view_kind": view.kind}
        try:
            summary = summarize(portfolio, view.classifier)
            await self._summary_store.put_summary(view.kind, summary)
        except SummaryError as e:
            logger.error(
                f"Could not summarize portfolio: {e}",
                extra={**log_extra, "error_kind": e.kind.value},
            )
            observe_view_write(view.kind, success=False)
            return False
        except Exception:
            logger.error("Failed to store portfolio summary.", extra=log_extra, exc_info=True)
            observe_view_write(view.kind, success=False)
            return False

        observe_view_write(view.kind, success=True)
        return True

    async def _checkpoint(self) -> None:
        position = self._feed.resume_token
        self.position = position
        try:
            await self._checkpoint_store.put_checkpoint(self.consumer_id, position)
        except Exception:
            logger.error(
                "Failed to store change feed checkpoint; events since the last stored checkpoint will be redelivered on restart.",
                extra={"consumer_id": self.consumer_id, "position": position.to_document() if position else None},
                exc_info=True,
            )
            observe_checkpoint_write(success=False)
            return
        observe_checkpoint_write(success=True)
