"""Invoices and sync audit tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create excel_uploads table (one row per import / sync run)
    op.create_table(
        'excel_uploads',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('filename', sa.Text(), nullable=False),
        sa.Column('size', sa.Integer(), server_default='0', nullable=True),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('uploaded_by', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), server_default=sa.text('false'), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_excel_uploads_type_created', 'excel_uploads', ['type', 'created_at'])

    # Create invoices table
    op.create_table(
        'invoices',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('holded_id', sa.Text(), nullable=True),
        sa.Column('holded_contact_id', sa.Text(), nullable=True),
        sa.Column('invoice_number', sa.Text(), server_default='', nullable=True),
        sa.Column('internal_number', sa.Text(), server_default='', nullable=True),
        sa.Column('issue_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accounting_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider', sa.Text(), server_default='', nullable=True),
        sa.Column('description', sa.Text(), server_default='', nullable=True),
        sa.Column('tags', sa.Text(), server_default='', nullable=True),
        sa.Column('account', sa.Text(), server_default='', nullable=True),
        sa.Column('project', sa.Text(), server_default='', nullable=True),
        sa.Column('iban', sa.Text(), server_default='', nullable=True),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('vat', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('retention', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('employees', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('equipment_recovery', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('total', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('pending', sa.Numeric(precision=12, scale=2), server_default='0', nullable=True),
        sa.Column('paid', sa.Boolean(), server_default=sa.text('false'), nullable=True),
        sa.Column('status', sa.Text(), server_default='', nullable=True),
        sa.Column('document_type', sa.Text(), server_default='purchase', nullable=True),
        sa.Column('upload_id', sa.BigInteger(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['upload_id'], ['excel_uploads.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('holded_id', name='uq_invoices_holded_id')
    )

    # Create indexes for invoices
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_account', 'invoices', ['account'])
    op.create_index('ix_invoices_upload_id', 'invoices', ['upload_id'])


def downgrade() -> None:
    op.drop_index('ix_invoices_upload_id', table_name='invoices')
    op.drop_index('ix_invoices_account', table_name='invoices')
    op.drop_index('ix_invoices_due_date', table_name='invoices')
    op.drop_table('invoices')

    op.drop_index('ix_excel_uploads_type_created', table_name='excel_uploads')
    op.drop_table('excel_uploads')
