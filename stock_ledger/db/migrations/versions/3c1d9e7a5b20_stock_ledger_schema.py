"""Stock ledger schema.

Tables:
- products, stores (master data read by the ledger)
- stock_balances (one row per store x product x lot)
- stock_transactions (append-only ledger)
- stock_documents (purchase/sale/store-in/return headers)
- production_runs (header + embedded material-out / item lines)
- sequence_counters (number series)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1d9e7a5b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LEDGER_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
QTY = sa.Numeric(18, 4)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("item", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("brand", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), nullable=True),
        sa.Column("length", QTY, nullable=True),
        sa.Column("width", QTY, nullable=True),
        sa.Column("grams", QTY, nullable=True),
        sa.Column("packing", QTY, nullable=True),
        sa.Column("cost_rate_qty", QTY, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("item", name="uq_products_item"),
    )

    op.create_table(
        "stores",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="Active"),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_stores_name"),
    )

    op.create_table(
        "stock_balances",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("store_id", sa.Uuid(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("lot_no", sa.Text(), nullable=False, server_default=""),
        sa.Column("quantity_packets", QTY, nullable=False, server_default="0"),
        sa.Column("weight_kg", QTY, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("store_id", "product_id", "lot_no", name="uq_stock_balances_key"),
    )
    op.create_index("ix_stock_balances_store_id", "stock_balances", ["store_id"])
    op.create_index("ix_stock_balances_product_id", "stock_balances", ["product_id"])

    op.create_table(
        "stock_transactions",
        sa.Column("id", LEDGER_ID, primary_key=True, autoincrement=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("store_id", sa.Uuid(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("lot_no", sa.Text(), nullable=False, server_default=""),
        sa.Column("quantity_delta", QTY, nullable=False),
        sa.Column("weight_delta", QTY, nullable=False),
        sa.Column("unit_rate", QTY, nullable=True),
        sa.Column("rate_basis", sa.Text(), nullable=True),
        sa.Column("value", sa.Numeric(18, 2), nullable=True),
        sa.Column("source_type", sa.Text(), nullable=True),
        sa.Column("source_id", sa.Uuid(), nullable=True),
        sa.Column("source_document", sa.Text(), nullable=True),
        sa.Column("reverses_id", LEDGER_ID, nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["reverses_id"], ["stock_transactions.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_stock_transactions_key", "stock_transactions", ["store_id", "product_id", "lot_no"])
    op.create_index("ix_stock_transactions_order", "stock_transactions", ["occurred_at", "id"])
    op.create_index("ix_stock_transactions_source", "stock_transactions", ["source_type", "source_id"])
    op.create_index("ix_stock_transactions_reverses_id", "stock_transactions", ["reverses_id"], unique=True)

    op.create_table(
        "stock_documents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("document_no", sa.Text(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="posted"),
        sa.Column("lines", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("kind", "document_no", name="uq_stock_documents_kind_no"),
    )

    op.create_table(
        "production_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("production_number", sa.Text(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("output_store_id", sa.Uuid(), nullable=False),
        sa.Column("material_out", sa.JSON(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="posted"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["output_store_id"], ["stores.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("production_number", name="uq_production_runs_production_number"),
    )

    op.create_table(
        "sequence_counters",
        sa.Column("name", sa.Text(), primary_key=True),
        sa.Column("current_value", sa.BigInteger(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("sequence_counters")
    op.drop_table("production_runs")
    op.drop_table("stock_documents")
    op.drop_index("ix_stock_transactions_reverses_id", table_name="stock_transactions")
    op.drop_index("ix_stock_transactions_source", table_name="stock_transactions")
    op.drop_index("ix_stock_transactions_order", table_name="stock_transactions")
    op.drop_index("ix_stock_transactions_key", table_name="stock_transactions")
    op.drop_table("stock_transactions")
    op.drop_index("ix_stock_balances_product_id", table_name="stock_balances")
    op.drop_index("ix_stock_balances_store_id", table_name="stock_balances")
    op.drop_table("stock_balances")
    op.drop_table("stores")
    op.drop_table("products")
