from __future__ import annotations

import logging
from typing import Protocol

from agui_host.protocol.events import RunErrorReason, WireEvent
from agui_host.protocol.run import Run

logger = logging.getLogger(__name__)


class StreamObserver(Protocol):
    """Structured callbacks describing a run's stream, kept outside the translation path."""

    def run_opened(self, run: Run) -> None:
        ...

    def event_written(self, run: Run, event: WireEvent, sequence: int) -> None:
        ...

    def run_errored(self, run: Run, reason: RunErrorReason, failure: BaseException | None) -> None:
        ...

    def encoding_failed(self, run: Run, event: WireEvent, error: Exception) -> None:
        ...

    def run_aborted(self, run: Run) -> None:
        ...

    def run_disconnected(self, run: Run) -> None:
        ...

    def run_closed(self, run: Run, frames_written: int) -> None:
        ...


class LoggingStreamObserver:
    """Default observer that reports stream activity through the standard logger."""

    def run_opened(self, run: Run) -> None:
        logger.info("agent run stream opened", extra={"run_id": run.run_id, "thread_id": run.thread_id})

    def event_written(self, run: Run, event: WireEvent, sequence: int) -> None:
        logger.debug(
            "wire event written",
            extra={"run_id": run.run_id, "event_type": event.type.value, "sequence": sequence},
        )

    def run_errored(self, run: Run, reason: RunErrorReason, failure: BaseException | None) -> None:
        logger.warning(
            "agent run ended with error",
            extra={"run_id": run.run_id, "reason": reason.value},
            exc_info=failure,
        )

    def encoding_failed(self, run: Run, event: WireEvent, error: Exception) -> None:
        logger.error(
            "wire event encoding failed",
            extra={"run_id": run.run_id, "event_type": event.type.value, "error": str(error)},
        )

    def run_aborted(self, run: Run) -> None:
        logger.info("agent run aborted by caller", extra={"run_id": run.run_id})

    def run_disconnected(self, run: Run) -> None:
        logger.info("client disconnected from agent run", extra={"run_id": run.run_id})

    def run_closed(self, run: Run, frames_written: int) -> None:
        logger.info(
            "agent run stream closed",
            extra={"run_id": run.run_id, "status": run.status.value, "frames_written": frames_written},
        )
