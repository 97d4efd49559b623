#!/usr/bin/env python3
"""
Holded Purchase Sync Service

Scheduler for per-company Holded purchase syncs, with the HTTP API,
observability and graceful shutdown handling.
"""

import argparse
import logging
import signal
import sys
import time
from collections.abc import Callable

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from src.config.loader import (
    cfg,
    get_company_ids,
    get_company_schedule,
    load_config,
    validate_config,
)
from src.jobs.holded_purchases import run_holded_purchases_sync
from src.server import set_scheduler_running, start_observability_server


# Configure structured logging
def setup_logging():
    """Setup structured logging based on configuration."""
    log_level = cfg("global.log_level", "INFO")
    log_format = cfg("global.log_format", "text")

    if log_format == "json":
        import structlog

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=[
                    structlog.stdlib.add_logger_name,
                    structlog.stdlib.add_log_level,
                    structlog.processors.TimeStamper(fmt="iso"),
                ],
            )
        )
        logging.basicConfig(level=getattr(logging, log_level.upper()), handlers=[handler])
    else:
        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: BackgroundScheduler | None = None


def create_job_runner(company_id: str) -> Callable:
    """
    Create the scheduled runner for one company's purchase sync.

    Errors are logged and swallowed so the scheduler keeps running.
    """

    def run_job():
        try:
            run_holded_purchases_sync(company_id)
        except Exception as e:
            logger.error(f"Job holded_purchases_{company_id} failed: {e}", exc_info=True)

    return run_job


def setup_job_scheduler() -> BackgroundScheduler:
    """Setup and configure the job scheduler."""
    scheduler = BackgroundScheduler(
        timezone=cfg("global.timezone", "UTC"),
        job_defaults=cfg(
            "scheduler.job_defaults",
            {"coalesce": False, "max_instances": 1, "misfire_grace_time": 300},
        ),
    )

    def job_listener(event: JobExecutionEvent):
        """Handle job execution events."""
        if event.exception:
            logger.error(f"Job {event.job_id} failed: {event.exception}")
        else:
            logger.info(f"Job {event.job_id} completed")

    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    return scheduler


def register_jobs(scheduler: BackgroundScheduler) -> int:
    """
    Register one cron job per enabled company.

    Returns:
        Number of jobs registered
    """
    jobs_registered = 0

    for company_id in get_company_ids():
        schedule = get_company_schedule(company_id)
        if not schedule:
            logger.warning(f"No schedule configured for Holded company {company_id}")
            continue

        try:
            trigger = CronTrigger.from_crontab(schedule, timezone=cfg("global.timezone", "UTC"))
        except ValueError as e:
            logger.error(f"Invalid schedule {schedule!r} for {company_id}: {e}")
            continue

        job_id = f"holded_purchases_{company_id}"
        scheduler.add_job(
            func=create_job_runner(company_id),
            trigger=trigger,
            id=job_id,
            name=f"Holded Purchases Sync ({company_id})",
            replace_existing=True,
        )
        jobs_registered += 1
        logger.info(f"Registered job: {job_id} with schedule: {schedule}")

    return jobs_registered


def run_single_job(company_id: str) -> int:
    """
    Run one company's sync once and exit.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    if company_id not in get_company_ids():
        logger.error(f"Holded company {company_id} is not enabled in configuration")
        return 1

    try:
        run_holded_purchases_sync(company_id)
    except Exception as e:
        logger.error(f"Single sync for {company_id} failed: {e}", exc_info=True)
        return 1

    logger.info(f"Single sync for {company_id} completed successfully")
    return 0


def handle_shutdown(signum, frame):
    """Handle graceful shutdown signals."""
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")

    if scheduler:
        logger.info("Shutting down scheduler...")
        set_scheduler_running(False)
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shut down complete")

    logger.info("Graceful shutdown complete")
    sys.exit(0)


def main():
    """Main entrypoint for the Holded purchase sync service."""
    global scheduler

    parser = argparse.ArgumentParser(description="Holded Purchase Sync Service")
    parser.add_argument("--run", metavar="COMPANY", help="Run one company's sync once")
    parser.add_argument("--config", default="config/app.yaml", help="Configuration file path")
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )

    args = parser.parse_args()

    try:
        load_config(args.config)
        setup_logging()
        logger.info("Starting Holded Purchase Sync Service")

        validate_config()
        logger.info("Configuration validated successfully")

        if args.validate_config:
            return 0

        if args.run:
            return run_single_job(args.run)

        signal.signal(signal.SIGTERM, handle_shutdown)
        signal.signal(signal.SIGINT, handle_shutdown)

        start_observability_server()

        scheduler = setup_job_scheduler()
        jobs_count = register_jobs(scheduler)

        if jobs_count == 0:
            logger.warning("No jobs registered. Check your configuration.")
            return 1

        logger.info(f"Registered {jobs_count} jobs")

        set_scheduler_running(True)
        scheduler.start()
        logger.info("Scheduler started successfully. Press Ctrl+C to stop.")

        while True:
            time.sleep(1)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    exit(main())
