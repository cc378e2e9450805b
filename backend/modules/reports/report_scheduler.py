"""
Background trigger for scheduled reports.

Runs alongside the application (or as its own process) and performs two
periodic tasks:

1. Every ``REPORT_SCHEDULE_POLL_MINUTES`` fire the report schedules that are due.
2. Once a day at ``REPORT_CLEANUP_HOUR``:00 delete expired report artifacts.
"""

from __future__ import annotations

import threading
import time
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from backend.database.dbconnect import get_engine
from backend.database.report_tables import ensure_report_tables
from backend.modules.logger import error, info, warning
from backend.modules.reports.report_config import ReportEngineConfig
from backend.modules.reports.report_service import ReportService
from backend.modules.reports.schedule_service import ScheduleService


def _validate_timezone(timezone_str: str) -> str:
    if not timezone_str:
        return "UTC"
    try:
        ZoneInfo(timezone_str)
        return timezone_str
    except (ZoneInfoNotFoundError, ValueError):
        warning(f"Invalid timezone '{timezone_str}' - using UTC instead. Set REPORT_TIMEZONE to a valid zone (e.g. 'Asia/Kolkata')")
        return "UTC"


class ReportSchedulerService:
    def __init__(
        self,
        schedule_service: ScheduleService,
        config: Optional[ReportEngineConfig] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.schedule_service = schedule_service
        self.report_service = schedule_service.report_service
        self.config = config or schedule_service.report_service.config
        self.config.timezone = _validate_timezone(self.config.timezone)
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.config.timezone)
        self._stop_event = threading.Event()

    def start(self, run_immediately: bool = True) -> None:
        info(f"[ReportScheduler] Schedule poll interval: {self.config.schedule_poll_minutes} minutes")
        info(f"[ReportScheduler] Cleanup time: {self.config.cleanup_hour:02d}:00 ({self.config.timezone})")

        self.scheduler.add_job(
            self.run_due_schedules,
            IntervalTrigger(minutes=self.config.schedule_poll_minutes),
            id="report_schedules",
            name="run_due_report_schedules",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.cleanup_expired_reports,
            CronTrigger(hour=self.config.cleanup_hour, minute=0),
            id="report_cleanup",
            name="cleanup_expired_reports",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        info("[ReportScheduler] Report scheduler started")

        if run_immediately:
            self.run_due_schedules()

    def run_due_schedules(self) -> None:
        try:
            summary = self.schedule_service.run_due_schedules()
            info(
                f"[ReportScheduler] Scheduled reports check completed: "
                f"{summary['succeeded']} succeeded, {summary['failed']} failed"
            )
        except Exception as exc:
            error(f"[ReportScheduler] Error running scheduled reports: {exc}", exc_info=True)

    def cleanup_expired_reports(self) -> None:
        try:
            deleted = self.report_service.cleanup_expired_reports()
            info(f"[ReportScheduler] Cleaned up {deleted} expired reports")
        except Exception as exc:
            error(f"[ReportScheduler] Error cleaning up expired reports: {exc}", exc_info=True)

    def run_forever(self) -> None:
        self.start()
        try:
            while not self._stop_event.is_set():
                time.sleep(1)
        except KeyboardInterrupt:
            info("[ReportScheduler] Received KeyboardInterrupt")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if self._stop_event.is_set():
            return
        info("[ReportScheduler] Stopping report scheduler")
        self._stop_event.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


def main() -> None:
    config = ReportEngineConfig.from_env()
    engine = get_engine(config)
    ensure_report_tables(engine)
    report_service = ReportService(engine, config=config)
    service = ReportSchedulerService(ScheduleService(engine, report_service), config=config)
    service.run_forever()


if __name__ == "__main__":
    main()
