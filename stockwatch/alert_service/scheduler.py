# stockwatch/alert_service/scheduler.py
import os
import logging
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from stockwatch.alert_service.services.alert_evaluator import AlertEvaluator
from stockwatch.alert_service.services.downstream_clients import AccountServiceClient, QuoteServiceClient
from stockwatch.shared.contracts import CycleSummary

logger = logging.getLogger(__name__)

ALERT_JOB_ID = "alerts.evaluate_pending_alerts"
# Cron minute field; "*" runs at the top of every minute
ALERT_CHECK_CRON_MINUTE = os.getenv("ALERT_CHECK_CRON_MINUTE", "*")


class CycleInProgressError(RuntimeError):
    """Raised when a cycle is requested while another one is still running."""


class SchedulerStoppedError(RuntimeError):
    """Raised when a cycle is requested after stop()."""


class AlertScheduler:
    """
    Owns the recurring evaluation job.

    The evaluator and the stop token are explicit: stop() sets the token (so an
    in-flight cycle stops before its next alert) and shuts the scheduler down.
    Scheduled and manual cycles share one non-blocking lock, so at most one
    cycle runs at a time; max_instances=1 additionally stops APScheduler from
    queueing a second copy of the job.
    """

    def __init__(self, evaluator: AlertEvaluator, cron_minute: str = ALERT_CHECK_CRON_MINUTE,
                 scheduler: Optional[BackgroundScheduler] = None):
        self.evaluator = evaluator
        self.stop_event = evaluator.stop_event
        self.cron_minute = cron_minute
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()

    def run_exclusive(self) -> CycleSummary:
        """
        Runs one evaluation cycle unless another is in flight.

        Raises:
            SchedulerStoppedError: If stop() has been called
            CycleInProgressError: If a cycle is already running
        """
        if self.stop_event.is_set():
            raise SchedulerStoppedError("Alert scheduler is stopped")
        if not self._cycle_lock.acquire(blocking=False):
            raise CycleInProgressError("An alert check cycle is already running")
        try:
            return self.evaluator.run_cycle()
        finally:
            self._cycle_lock.release()

    def _run_job(self) -> Optional[CycleSummary]:
        logger.info("Running alert check...")
        try:
            return self.run_exclusive()
        except SchedulerStoppedError:
            return None
        except CycleInProgressError:
            logger.info("Previous alert check still running; skipping this run.")
            return None

    def start(self) -> None:
        with self._lock:
            if self.scheduler.running:
                return
            self.stop_event.clear()
            self.scheduler.add_job(
                self._run_job,
                CronTrigger(minute=self.cron_minute, timezone="UTC"),
                id=ALERT_JOB_ID,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self.scheduler.start()
            logger.info(f"Alert scheduler started (cron minute='{self.cron_minute}').")

    def stop(self, wait: bool = True) -> None:
        with self._lock:
            self.stop_event.set()
            if self.scheduler.running:
                self.scheduler.shutdown(wait=wait)
                logger.info("Alert scheduler stopped.")


def build_default_scheduler() -> AlertScheduler:
    """Wires the evaluator to account-service and quote-service using environment configuration."""
    evaluator = AlertEvaluator(AccountServiceClient(), QuoteServiceClient())
    return AlertScheduler(evaluator)
