"""Triggers synchronization cycles once or on a cron schedule, never concurrently."""

import threading
from datetime import datetime
from typing import Literal, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from watermark_sync.errors import ConfigurationError, ResolverAbortLimitExceeded
from watermark_sync.models.config import ScheduleConfig
from watermark_sync.sync.models import CycleOutcome, CyclePhase

log = structlog.stdlib.get_logger()

JOB_ID = "watermark_sync_cycle"


class Cycle(Protocol):
    """What the scheduler runs: SyncCycle, or anything shaped like it."""

    @property
    def phase(self) -> CyclePhase: ...

    def run(self) -> CycleOutcome: ...


def parse_schedule(expression: str) -> CronTrigger:
    """
    Parse a cron expression with an optional trailing timezone.

    Examples: ``"* * * * *"``, ``"0 6 * * * America/Chicago"``.

    Raises:
        ConfigurationError: If the expression or timezone is invalid
    """
    fields = expression.split()
    timezone = None

    if len(fields) == 6:
        try:
            timezone = ZoneInfo(fields[-1])
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown timezone in schedule {expression!r}") from e
        fields = fields[:-1]

    if len(fields) != 5:
        raise ConfigurationError(
            f"Schedule must have 5 cron fields and an optional timezone: {expression!r}"
        )

    try:
        return CronTrigger.from_crontab(" ".join(fields), timezone=timezone)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression {expression!r}: {e}") from e


class CycleScheduler:
    """Owns the schedule and the single worker that runs cycles.

    At most one cycle is ever active. A trigger that fires while a cycle is
    running is dropped, or with the "queue" policy waits behind it (one
    waiting trigger at most; further ones are dropped). Stopping rejects new
    triggers at once and waits for the in-flight cycle to finish.
    """

    def __init__(
        self,
        cycle: Cycle,
        schedule: str | None = None,
        overlap_policy: Literal["drop", "queue"] = "drop",
    ):
        """
        Initialize the scheduler.

        Args:
            cycle: The cycle to run on every trigger
            schedule: Cron expression (optional timezone suffix); one-shot when None
            overlap_policy: "drop" or "queue" triggers that fire mid-cycle

        Raises:
            ConfigurationError: If the schedule is invalid
        """
        self._cycle = cycle
        self._schedule = schedule
        self._overlap_policy = overlap_policy
        self._trigger = parse_schedule(schedule) if schedule else None

        admitted = 2 if overlap_policy == "queue" else 1
        self._max_admitted = admitted
        self._admission = threading.BoundedSemaphore(admitted)
        self._cycle_lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._stopping = threading.Event()
        self._stop_requested = threading.Event()

        self._scheduler: BackgroundScheduler | None = None
        self._fatal_error: ResolverAbortLimitExceeded | None = None
        self.active_cycles = 0
        self.admitted_triggers = 0
        self.last_outcome: CycleOutcome | None = None

    @classmethod
    def from_config(cls, cycle: Cycle, config: ScheduleConfig) -> "CycleScheduler":
        return cls(cycle, schedule=config.expression, overlap_policy=config.overlap_policy)

    @property
    def state(self) -> CyclePhase:
        return self._cycle.phase

    @property
    def is_recurring(self) -> bool:
        return self._trigger is not None

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    @property
    def next_fire_time(self) -> datetime | None:
        """When the recurring trigger fires next, or None if not started."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job is not None else None

    def trigger(self) -> CycleOutcome | None:
        """
        Run a cycle now, honouring the overlap policy.

        Returns:
            The cycle outcome, or None when the trigger was dropped
        """
        if self._stopping.is_set():
            log.info("cycle_trigger_rejected", reason="stopping")
            return None

        if not self._admission.acquire(blocking=False):
            log.warning(
                "cycle_trigger_dropped",
                reason="cycle_in_progress",
                overlap_policy=self._overlap_policy,
                state=self.state.value,
            )
            return None

        # Counts the running cycle plus a queued trigger waiting behind it
        with self._counter_lock:
            self.admitted_triggers += 1
        try:
            with self._cycle_lock:
                if self._stopping.is_set():
                    log.info("cycle_trigger_rejected", reason="stopping")
                    return None
                return self._run_cycle()
        finally:
            with self._counter_lock:
                self.admitted_triggers -= 1
            self._admission.release()

    def _run_cycle(self) -> CycleOutcome | None:
        self.active_cycles += 1
        try:
            outcome = self._cycle.run()
            self.last_outcome = outcome
            return outcome
        except ResolverAbortLimitExceeded as e:
            self._fatal_error = e
            self._stopping.set()
            self._stop_requested.set()
            return None
        except Exception as e:
            # A cycle must never take the scheduler down
            log.exception("sync_cycle_crashed", error=str(e))
            return None
        finally:
            self.active_cycles -= 1

    def start(self) -> None:
        """Start firing the recurring trigger in the background."""
        if self._trigger is None:
            raise RuntimeError("start() needs a recurring schedule; use run() for one-shot mode")
        if self._scheduler is not None:
            return

        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=self._max_admitted)},
            job_defaults={"coalesce": True, "max_instances": self._max_admitted},
        )
        self._scheduler.add_job(self.trigger, self._trigger, id=JOB_ID, replace_existing=True)
        self._scheduler.start()

        log.info(
            "scheduler_started",
            schedule=self._schedule,
            overlap_policy=self._overlap_policy,
            next_fire_time=self.next_fire_time,
        )

    def run(self) -> CycleOutcome | None:
        """
        Run until done: one cycle in one-shot mode, otherwise until stop().

        Returns:
            The last cycle outcome

        Raises:
            ResolverAbortLimitExceeded: If the fail-closed abort policy tripped
        """
        if self._trigger is None:
            log.info("running_single_cycle")
            outcome = self.trigger()
        else:
            self.start()
            while not self._stop_requested.wait(timeout=1.0):
                pass
            self.stop()
            outcome = self.last_outcome

        if self._fatal_error is not None:
            raise self._fatal_error
        return outcome

    def request_stop(self) -> None:
        """Ask run() to return; safe to call from a signal handler."""
        self._stopping.set()
        self._stop_requested.set()

    def stop(self) -> None:
        """Stop accepting triggers, wait for the in-flight cycle, release resources."""
        self._stopping.set()
        self._stop_requested.set()

        log.info("scheduler_stopping", state=self.state.value)

        if self._scheduler is not None:
            self._scheduler.pause()

        # Blocks until the running cycle, if any, is back to idle
        with self._cycle_lock:
            pass

        if self._scheduler is not None:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        log.info("scheduler_stopped")
