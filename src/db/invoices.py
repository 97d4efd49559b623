"""
Persistence helpers for invoices and sync audit rows.

All functions take an explicit session and never commit; the caller owns
the transaction boundaries.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from ..common.dates import to_iso, utc_now
from ..common.etl import coerce_text, parse_date
from ..holded.invoices import DATE_FIELDS, MUTABLE_FIELDS, NUMERIC_FIELDS
from .models import Invoice, SyncRun

logger = logging.getLogger(__name__)

SYNC_RUN_TYPE = "holded_api"

# Keeps IN (...) lists well below driver parameter limits
LOOKUP_CHUNK_SIZE = 500

_CENT = Decimal("0.01")


def create_sync_run(
    session: Session,
    company_id: str,
    documents_count: int,
    uploaded_by: str | None = None,
) -> SyncRun:
    """Add (and flush) the audit row for a Holded sync run."""
    now = utc_now()
    run = SyncRun(
        filename=f"holded_sync_{to_iso(now)}",
        size=0,
        type=SYNC_RUN_TYPE,
        uploaded_by=uploaded_by,
        run_metadata={
            "source": SYNC_RUN_TYPE,
            "company": company_id,
            "documents_count": documents_count,
            "sync_date": to_iso(now),
        },
        processed=True,
        processed_at=now,
    )
    session.add(run)
    session.flush()
    return run


def delete_sync_run(session: Session, run_id: int) -> None:
    run = session.get(SyncRun, run_id)
    if run is not None:
        session.delete(run)


def mark_sync_run_partial(session: Session, run_id: int, error: str, written: int) -> None:
    """Flag a run whose invoice writes were only partly committed."""
    run = session.get(SyncRun, run_id)
    if run is None:
        return
    run.processed = False
    run.run_metadata = {
        **(run.run_metadata or {}),
        "status": "partial",
        "error": error,
        "written_count": written,
    }


def find_invoices_by_holded_ids(session: Session, holded_ids: Iterable[str]) -> dict[str, Invoice]:
    """Persisted invoices keyed by holded_id, for the ids given."""
    ids = sorted({hid for hid in holded_ids if hid})
    found: dict[str, Invoice] = {}
    for start in range(0, len(ids), LOOKUP_CHUNK_SIZE):
        chunk = ids[start : start + LOOKUP_CHUNK_SIZE]
        rows = session.execute(select(Invoice).where(Invoice.holded_id.in_(chunk))).scalars()
        for invoice in rows:
            found[invoice.holded_id] = invoice
    return found


def round_amount(value: Any) -> Decimal:
    """Amount rounded to cents, half away from zero like the database."""
    try:
        return Decimal(str(value if value is not None else 0)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return Decimal(0).quantize(_CENT)


def to_db_row(invoice: dict[str, Any]) -> dict[str, Any]:
    """Invoice dict with amounts rounded to cents and ISO dates turned into datetimes."""
    row = dict(invoice)
    for name in NUMERIC_FIELDS:
        if name in row:
            row[name] = round_amount(row[name])
    for name in DATE_FIELDS:
        parsed = parse_date(row.get(name))
        row[name] = parsed.astimezone(UTC) if parsed else None
    return row


def insert_invoices(session: Session, rows: Sequence[dict[str, Any]]) -> int:
    """Bulk insert invoice rows, returning how many were inserted."""
    if not rows:
        return 0
    session.execute(insert(Invoice), [to_db_row(row) for row in rows])
    return len(rows)


def update_invoice(session: Session, invoice_id: int, values: dict[str, Any]) -> None:
    session.execute(update(Invoice).where(Invoice.id == invoice_id).values(**to_db_row(values)))


def _comparable(name: str, value: Any) -> Any:
    if name in NUMERIC_FIELDS:
        return round_amount(value)
    if name in DATE_FIELDS:
        parsed = parse_date(value)
        return parsed.astimezone(UTC).replace(tzinfo=None) if parsed else None
    if name == "paid":
        return bool(value)
    return coerce_text(value)


def changed_fields(existing: Invoice, incoming: dict[str, Any]) -> list[str]:
    """Mutable fields whose incoming value differs from the stored one."""
    return [
        name
        for name in MUTABLE_FIELDS
        if _comparable(name, getattr(existing, name)) != _comparable(name, incoming.get(name))
    ]


def latest_sync_runs(session: Session, limit: int = 10) -> list[SyncRun]:
    """Most recent Holded sync audit rows, newest first."""
    stmt = (
        select(SyncRun)
        .where(SyncRun.type == SYNC_RUN_TYPE)
        .order_by(SyncRun.id.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars())