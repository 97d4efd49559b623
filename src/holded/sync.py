"""
Holded purchase synchronization.

Runs the whole pipeline for one company: collect pending and overdue
purchases, enrich them with the contact directory, transform them to
invoice rows and reconcile those against the ``invoices`` table.

The audit row (``excel_uploads``) is committed before any invoice is
written. If the run fails afterwards it is deleted when nothing was
written yet, or kept and flagged ``partial`` when some invoices were
already committed under it.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..adapters.holded import HoldedClient, HoldedError, HoldedErrorCode
from ..common.dates import utc_now
from ..common.pagination import PaginationPolicy
from ..config.loader import get_sync_settings
from ..db.invoices import (
    changed_fields,
    create_sync_run,
    delete_sync_run,
    find_invoices_by_holded_ids,
    insert_invoices,
    mark_sync_run_partial,
    update_invoice,
)
from .contacts import enrich_from_directory
from .filters import CollectionStrategy, collect_pending_and_overdue
from .invoices import MUTABLE_FIELDS, transform_purchases

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    IDLE = "idle"
    COLLECTING_REMOTE = "collecting_remote"
    ENRICHING_CONTACTS = "enriching_contacts"
    TRANSFORMING = "transforming"
    DIFFING_PERSISTED = "diffing_persisted"
    WRITING = "writing"
    FINALIZED = "finalized"
    ABORTED = "aborted"


class SyncWriteError(HoldedError):
    """Persisting the sync results failed."""

    code = HoldedErrorCode.SYNC_WRITE


class SyncInProgressError(HoldedError):
    """Another sync for the same company is still running."""

    code = HoldedErrorCode.SYNC_IN_PROGRESS


_company_locks: dict[str, threading.Lock] = {}
_company_locks_guard = threading.Lock()


@contextmanager
def single_flight(company_id: str) -> Iterator[None]:
    """Hold the company's sync lock, rejecting a concurrent run outright."""
    with _company_locks_guard:
        lock = _company_locks.setdefault(company_id, threading.Lock())
    if not lock.acquire(blocking=False):
        raise SyncInProgressError(f"A Holded sync for {company_id} is already running")
    try:
        yield
    finally:
        lock.release()


@dataclass
class SyncSettings:
    page_size: int = 100
    max_pages: int | None = 1000
    pagination_policy: PaginationPolicy = PaginationPolicy.BEST_EFFORT
    collection_strategy: CollectionStrategy = CollectionStrategy.SINGLE_WALK

    @classmethod
    def from_config(cls) -> "SyncSettings":
        settings = get_sync_settings()
        return cls(
            page_size=int(settings["page_size"]),
            max_pages=settings["max_pages"],
            pagination_policy=PaginationPolicy(settings["pagination_policy"]),
            collection_strategy=CollectionStrategy(settings["collection_strategy"]),
        )


class PurchaseSync:
    """One sync run for one company. Not reusable: build a new one per run."""

    def __init__(
        self,
        client: HoldedClient,
        session: Session,
        settings: SyncSettings | None = None,
        uploaded_by: str | None = None,
        today: date | None = None,
    ):
        self.client = client
        self.session = session
        self.settings = settings or SyncSettings()
        self.uploaded_by = uploaded_by
        self.today = today

        self.phase = SyncPhase.IDLE
        self.phases: list[SyncPhase] = [SyncPhase.IDLE]
        self.sync_run_id: int | None = None
        self.written = 0

    @property
    def company_id(self) -> str:
        return self.client.company_id

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug(f"[{self.company_id}] sync phase {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.phases.append(phase)

    def run(self) -> dict[str, Any]:
        """Execute the sync under the company's single-flight lock."""
        with single_flight(self.company_id):
            return self._run()

    def _collect(self) -> list[dict]:
        self._enter(SyncPhase.COLLECTING_REMOTE)
        purchases = collect_pending_and_overdue(
            self.client,
            page_size=self.settings.page_size,
            policy=self.settings.pagination_policy,
            strategy=self.settings.collection_strategy,
            max_pages=self.settings.max_pages,
            today=self.today,
        )

        self._enter(SyncPhase.ENRICHING_CONTACTS)
        return enrich_from_directory(
            self.client,
            purchases,
            page_size=self.settings.page_size,
            policy=self.settings.pagination_policy,
            max_pages=self.settings.max_pages,
        )

    def _run(self) -> dict[str, Any]:
        logger.info(f"[{self.company_id}] Starting Holded purchase sync")

        try:
            purchases = self._collect()

            self._enter(SyncPhase.TRANSFORMING)
            invoices = transform_purchases(purchases)

            self._enter(SyncPhase.DIFFING_PERSISTED)
            sync_run = create_sync_run(
                self.session, self.company_id, len(invoices), uploaded_by=self.uploaded_by
            )
            self.session.commit()
            self.sync_run_id = sync_run.id
            logger.info(f"[{self.company_id}] Created sync record {sync_run.id}")

            existing = find_invoices_by_holded_ids(
                self.session, (invoice["holded_id"] for invoice in invoices)
            )
            new_rows = []
            changed_rows = []
            unchanged = 0
            for invoice in invoices:
                current = existing.get(invoice["holded_id"])
                if current is None:
                    new_rows.append(invoice)
                elif changed_fields(current, invoice):
                    changed_rows.append((current.id, invoice))
                else:
                    unchanged += 1

            logger.info(
                f"[{self.company_id}] {len(new_rows)} new, {len(changed_rows)} changed, "
                f"{unchanged} unchanged invoices"
            )

            self._enter(SyncPhase.WRITING)
            processed_at = utc_now()
            stamp = {"upload_id": sync_run.id, "processed_at": processed_at}

            inserted = insert_invoices(self.session, [{**row, **stamp} for row in new_rows])
            self.session.commit()
            self.written += inserted

            updated = 0
            for invoice_id, invoice in changed_rows:
                values = {name: invoice.get(name) for name in MUTABLE_FIELDS}
                update_invoice(self.session, invoice_id, {**values, **stamp})
                updated += 1
            self.session.commit()
            self.written += updated

            self._enter(SyncPhase.FINALIZED)
            logger.info(
                f"[{self.company_id}] Holded sync completed: {inserted} inserted, "
                f"{updated} updated, {len(invoices)} documents"
            )
            return {
                "success": True,
                "company": self.company_id,
                "documents_count": len(invoices),
                "inserted_count": inserted,
                "updated_count": updated,
                "unchanged_count": unchanged,
                "sync_record": sync_run.to_dict(),
            }

        except Exception as e:
            failed_phase = self.phase
            self._enter(SyncPhase.ABORTED)
            logger.error(f"[{self.company_id}] Holded sync failed during {failed_phase.value}: {e}")
            self._compensate(e)
            if isinstance(e, SQLAlchemyError):
                raise SyncWriteError(f"Error writing Holded sync results: {e}") from e
            raise

    def _compensate(self, error: Exception) -> None:
        """Undo or flag the audit row of a failed run."""
        try:
            self.session.rollback()
        except SQLAlchemyError as e:
            logger.error(f"[{self.company_id}] Rollback failed: {e}")

        if self.sync_run_id is None:
            return

        try:
            if self.written == 0:
                delete_sync_run(self.session, self.sync_run_id)
                self.session.commit()
                logger.info(f"[{self.company_id}] Deleted sync record {self.sync_run_id} after error")
            else:
                mark_sync_run_partial(self.session, self.sync_run_id, str(error), self.written)
                self.session.commit()
                logger.warning(
                    f"[{self.company_id}] Sync record {self.sync_run_id} marked partial, "
                    f"{self.written} invoices were already written"
                )
        except SQLAlchemyError as e:
            logger.error(f"[{self.company_id}] Could not clean up sync record {self.sync_run_id}: {e}")
            self.session.rollback()


def sync_documents_with_database(
    session: Session,
    client: HoldedClient,
    settings: SyncSettings | None = None,
    uploaded_by: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Run one Holded purchase sync for ``client``'s company."""
    return PurchaseSync(client, session, settings, uploaded_by=uploaded_by, today=today).run()
