"""Runs one resolve -> bind -> stream -> emit synchronization cycle."""

from contextlib import closing
from datetime import datetime, timezone
from typing import Callable

import structlog

from watermark_sync.errors import ResolverAbortLimitExceeded, SourceQueryFailed
from watermark_sync.models.config import ScheduleConfig
from watermark_sync.models.watermark import Abort
from watermark_sync.sync.event_emitter import EventEmitter
from watermark_sync.sync.models import CycleOutcome, CyclePhase
from watermark_sync.sync.query_binder import QueryBinder
from watermark_sync.sync.row_stream import RowStreamExecutor
from watermark_sync.sync.watermark_resolver import WatermarkResolver

log = structlog.stdlib.get_logger()


class SyncCycle:
    """Orchestrates one synchronization cycle at a time.

    No progress is kept between cycles: each run re-derives the watermark from
    the destination. The only state carried across runs is the count of
    consecutive resolver aborts, used by the fail-closed abort policy.
    """

    def __init__(
        self,
        resolver: WatermarkResolver,
        binder: QueryBinder,
        executor: RowStreamExecutor,
        emitter: EventEmitter,
        schedule_config: ScheduleConfig | None = None,
        on_phase_change: Callable[[CyclePhase], None] | None = None,
    ):
        """
        Initialize the cycle.

        Args:
            resolver: Resolves the watermark from the destination
            binder: Binds it into the source statement
            executor: Streams source rows
            emitter: Delivers events to the sink
            schedule_config: Abort policy settings (skip forever when None)
            on_phase_change: Called on every phase transition
        """
        self._resolver = resolver
        self._binder = binder
        self._executor = executor
        self._emitter = emitter
        self._schedule_config = schedule_config or ScheduleConfig()
        self._on_phase_change = on_phase_change
        self._phase = CyclePhase.IDLE
        self.consecutive_aborts = 0

    @property
    def phase(self) -> CyclePhase:
        return self._phase

    def run(self) -> CycleOutcome:
        """
        Run one cycle.

        Per-cycle failures are logged and reported in the outcome; they are
        never raised.

        Returns:
            CycleOutcome describing what happened

        Raises:
            ResolverAbortLimitExceeded: Only under abort_policy "fail", once
                max_consecutive_aborts cycles in a row were aborted
        """
        start_time = datetime.now(timezone.utc)
        log.info("sync_cycle_started", index=self._resolver.spec.index, start_time=start_time)
        self._emitter.reset()

        try:
            self._set_phase(CyclePhase.RESOLVING)
            watermark = self._resolver.resolve()

            if isinstance(watermark, Abort):
                return self._aborted(watermark, start_time)
            self.consecutive_aborts = 0

            self._set_phase(CyclePhase.QUERYING)
            bound = self._binder.bind(watermark)
            rows = self._executor.stream(bound)

            self._set_phase(CyclePhase.EMITTING)
            try:
                # Closing the generator releases the source connection on every path
                with closing(rows):
                    self._emitter.emit_all(rows)
            except SourceQueryFailed as e:
                return self._failed(watermark, bound.watermark, CyclePhase.QUERYING, e, start_time)
            except Exception as e:
                return self._failed(watermark, bound.watermark, CyclePhase.EMITTING, e, start_time)

            end_time = datetime.now(timezone.utc)
            outcome = CycleOutcome(
                watermark=watermark,
                bound_watermark=bound.watermark,
                rows_emitted=self._emitter.rows_emitted,
                highest_watermark_emitted=self._emitter.highest_watermark,
                start_time=start_time,
                end_time=end_time,
            )

            log.info(
                "sync_cycle_completed",
                index=self._resolver.spec.index,
                watermark=bound.watermark,
                rows_emitted=outcome.rows_emitted,
                highest_watermark_emitted=outcome.highest_watermark_emitted,
                duration_seconds=outcome.duration_seconds,
            )
            return outcome

        finally:
            self._set_phase(CyclePhase.IDLE)

    def _aborted(self, watermark: Abort, start_time: datetime) -> CycleOutcome:
        self.consecutive_aborts += 1
        end_time = datetime.now(timezone.utc)

        log.warning(
            "sync_cycle_skipped",
            index=self._resolver.spec.index,
            phase=watermark.phase,
            reason=watermark.reason,
            consecutive_aborts=self.consecutive_aborts,
        )

        policy = self._schedule_config
        if policy.abort_policy == "fail" and self.consecutive_aborts >= policy.max_consecutive_aborts:
            log.error(
                "abort_limit_exceeded",
                consecutive_aborts=self.consecutive_aborts,
                max_consecutive_aborts=policy.max_consecutive_aborts,
            )
            raise ResolverAbortLimitExceeded(self.consecutive_aborts, watermark.reason)

        return CycleOutcome(
            watermark=watermark,
            aborted=True,
            failed_phase=CyclePhase.RESOLVING,
            error=f"{watermark.phase}: {watermark.reason}",
            start_time=start_time,
            end_time=end_time,
        )

    def _failed(
        self,
        watermark,
        bound_watermark: int | None,
        phase: CyclePhase,
        error: Exception,
        start_time: datetime,
    ) -> CycleOutcome:
        end_time = datetime.now(timezone.utc)

        log.error(
            "sync_cycle_failed",
            index=self._resolver.spec.index,
            phase=phase.value,
            watermark=bound_watermark,
            rows_emitted=self._emitter.rows_emitted,
            error=str(error),
        )

        return CycleOutcome(
            watermark=watermark,
            bound_watermark=bound_watermark,
            rows_emitted=self._emitter.rows_emitted,
            highest_watermark_emitted=self._emitter.highest_watermark,
            failed_phase=phase,
            error=str(error),
            start_time=start_time,
            end_time=end_time,
        )

    def _set_phase(self, phase: CyclePhase) -> None:
        if phase is self._phase:
            return
        self._phase = phase
        if self._on_phase_change is not None:
            self._on_phase_change(phase)
