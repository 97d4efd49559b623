#!/usr/bin/env python3
"""
Holded Purchases Sync Job

Syncs pending and overdue purchase documents from one Holded company into
the invoices table, with one excel_uploads audit row per run.

Usage:
    python -m src.jobs.holded_purchases --company solucions [--uploaded-by USER_ID]
"""

import argparse
import logging
from typing import Any

from src.adapters.holded import HoldedError
from src.common.dates import format_duration, utc_now
from src.config.loader import ConfigurationError, load_config
from src.db.deps import get_session
from src.holded.service import HoldedPurchasesService
from src.server import record_sync_error, record_sync_start, record_sync_success

logger = logging.getLogger(__name__)


def run_holded_purchases_sync(
    company_id: str,
    uploaded_by: str | None = None,
    service: HoldedPurchasesService | None = None,
) -> dict[str, Any]:
    """
    Run the Holded purchases sync for one company.

    Args:
        company_id: Configured company key (e.g. "solucions")
        uploaded_by: Optional user id stored on the audit row
        service: Service to use, built from configuration when omitted

    Returns:
        Sync summary (documents_count, inserted_count, updated_count, sync_record)
    """
    started = utc_now()
    start_time = record_sync_start(company_id)
    logger.info(f"Starting Holded purchases sync for {company_id}")

    service = service or HoldedPurchasesService.from_config()

    try:
        with get_session() as session:
            result = service.sync_documents_with_database(
                session, company_id, uploaded_by=uploaded_by
            )
    except Exception as e:
        record_sync_error(company_id, start_time, str(e))
        logger.error(f"Holded purchases sync for {company_id} failed: {e}")
        raise

    record_sync_success(company_id, start_time, result)
    logger.info(
        f"Holded purchases sync for {company_id} completed in "
        f"{format_duration(utc_now() - started)}: {result['inserted_count']} inserted, "
        f"{result['updated_count']} updated, {result['documents_count']} documents"
    )
    return result


def main():
    """CLI entry point for the Holded purchases sync job."""
    parser = argparse.ArgumentParser(description="Holded Purchases Sync Job")
    parser.add_argument("--company", required=True, help="Holded company key (e.g. solucions)")
    parser.add_argument("--uploaded-by", help="User id recorded on the sync audit row")
    parser.add_argument("--config", default="config/app.yaml", help="Configuration file path")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        load_config(args.config)
        result = run_holded_purchases_sync(args.company, uploaded_by=args.uploaded_by)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except HoldedError as e:
        logger.error(f"Holded sync failed ({e.code.value}): {e.message}")
        return 1

    print(f"Holded Purchases Sync Result: {result}")
    return 0


if __name__ == "__main__":
    exit(main())
