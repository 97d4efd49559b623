"""
SQLAlchemy models for the invoices store.

Defines the two tables the Holded purchase sync writes to:
- invoices: purchase invoices, linked back to Holded through holded_id
- excel_uploads: one audit row per import run (Holded syncs use type 'holded_api')
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# BIGSERIAL on Postgres, INTEGER PRIMARY KEY (rowid alias) on SQLite
PrimaryKeyType = BigInteger().with_variant(Integer, "sqlite")


class SyncRun(Base):
    """
    Audit row for one import run.

    The table predates the Holded integration (it logged spreadsheet
    uploads), hence the name and the filename/size columns.
    """

    __tablename__ = "excel_uploads"

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    filename = Column(Text, nullable=False)
    size = Column(Integer, default=0)
    type = Column(Text, nullable=False)  # 'holded_api' for Holded syncs
    uploaded_by = Column(Text)
    run_metadata = Column("metadata", JSON)
    processed = Column(Boolean, default=False)
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    invoices = relationship("Invoice", back_populates="sync_run")

    __table_args__ = (Index("ix_excel_uploads_type_created", "type", "created_at"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "size": self.size,
            "type": self.type,
            "uploaded_by": self.uploaded_by,
            "metadata": self.run_metadata,
            "processed": self.processed,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


class Invoice(Base):
    """
    Purchase invoice.

    Sources: Holded purchase documents (holded_id set) and older spreadsheet
    imports (holded_id NULL).
    """

    __tablename__ = "invoices"

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    holded_id = Column(Text, unique=True)
    holded_contact_id = Column(Text)

    invoice_number = Column(Text, default="")
    internal_number = Column(Text, default="")
    issue_date = Column(DateTime(timezone=True))
    accounting_date = Column(DateTime(timezone=True))
    due_date = Column(DateTime(timezone=True))
    payment_date = Column(DateTime(timezone=True))

    provider = Column(Text, default="")
    description = Column(Text, default="")
    tags = Column(Text, default="")
    account = Column(Text, default="")  # business channel
    project = Column(Text, default="")  # business channel
    iban = Column(Text, default="")

    subtotal = Column(Numeric(12, 2), default=0)
    vat = Column(Numeric(12, 2), default=0)
    retention = Column(Numeric(12, 2), default=0)
    employees = Column(Numeric(12, 2), default=0)
    equipment_recovery = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), default=0)
    pending = Column(Numeric(12, 2), default=0)
    paid = Column(Boolean, default=False)
    status = Column(Text, default="")
    document_type = Column(Text, default="purchase")

    upload_id = Column(PrimaryKeyType, ForeignKey("excel_uploads.id"))
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sync_run = relationship("SyncRun", back_populates="invoices")

    __table_args__ = (
        Index("ix_invoices_due_date", "due_date"),
        Index("ix_invoices_account", "account"),
        Index("ix_invoices_upload_id", "upload_id"),
    )
