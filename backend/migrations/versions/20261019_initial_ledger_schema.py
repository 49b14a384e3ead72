"""Initial ledger schema: accounts, stock, sales, purchases, payroll

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=False):
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "financial_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("account_type", sa.String(16), nullable=False),
        sa.Column("account_category", sa.String(32), nullable=True),
        sa.Column("bank_name", sa.String(64), nullable=True),
        sa.Column("account_number", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("opening_balance", sa.Numeric(15, 2), nullable=False),
        sa.Column("current_balance", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("auto_update_balance", sa.Boolean(), nullable=False),
        sa.Column("negative_balance_policy", sa.String(16), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(updated=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_financial_accounts_account_type", "financial_accounts", ["account_type"])
    op.create_index("ix_financial_accounts_account_category", "financial_accounts", ["account_category"])
    op.create_index("ix_financial_accounts_type_active", "financial_accounts", ["account_type", "is_active"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("purchase_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("selling_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False),
        sa.Column("min_stock", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(updated=True),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_active_name", "products", ["is_active", "name"])

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("stock_before", sa.Integer(), nullable=False),
        sa.Column("stock_after", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_movement_type", "stock_movements", ["movement_type"])
    op.create_index("ix_stock_movements_product_id_id", "stock_movements", ["product_id", "id"])
    op.create_index("ix_stock_movements_reference", "stock_movements", ["reference_type", "reference_id"])

    op.create_table(
        "financial_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_code", sa.String(64), nullable=False, unique=True),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("subcategory", sa.String(32), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("from_account_id", sa.Integer(), sa.ForeignKey("financial_accounts.id"), nullable=True),
        sa.Column("to_account_id", sa.Integer(), sa.ForeignKey("financial_accounts.id"), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("balance_applied", sa.Boolean(), nullable=False),
        sa.Column("balance_applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=True),
        sa.CheckConstraint("amount > 0", name="ck_fintx_amount_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_financial_transactions_category", "financial_transactions", ["category"])
    op.create_index("ix_financial_transactions_status", "financial_transactions", ["status"])
    op.create_index("ix_financial_transactions_transaction_date", "financial_transactions", ["transaction_date"])
    op.create_index("ix_financial_transactions_from_account_id", "financial_transactions", ["from_account_id"])
    op.create_index("ix_financial_transactions_to_account_id", "financial_transactions", ["to_account_id"])
    op.create_index("ix_fintx_reference", "financial_transactions", ["reference_type", "reference_id"])
    op.create_index(
        "ix_fintx_type_status_date", "financial_transactions", ["transaction_type", "status", "transaction_date"]
    )

    op.create_table(
        "cash_flows",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("flow_date", sa.Date(), nullable=False),
        sa.Column("flow_type", sa.String(16), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("financial_accounts.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("financial_transactions.id"), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("running_balance", sa.Numeric(15, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_cash_flows_amount_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_flows_flow_date", "cash_flows", ["flow_date"])
    op.create_index("ix_cash_flows_category", "cash_flows", ["category"])
    op.create_index("ix_cash_flows_transaction_id", "cash_flows", ["transaction_id"])
    op.create_index("ix_cash_flows_account_date", "cash_flows", ["account_id", "flow_date"])

    op.create_table(
        "transaction_audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("financial_transactions.id"), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transaction_audit_events_transaction_id", "transaction_audit_events", ["transaction_id"])
    op.create_index("ix_transaction_audit_events_event_type", "transaction_audit_events", ["event_type"])

    op.create_table(
        "financial_postings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("reference_type", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("financial_transactions.id"), nullable=True),
        *_timestamps(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_number", sa.String(32), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("channel", sa.String(16), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False),
        sa.Column("total", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_cost", sa.Numeric(15, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_rejection_reason", sa.String(500), nullable=True),
        sa.Column("financial_revision", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_confirmed_by", sa.Integer(), nullable=True),
        sa.Column("payment_rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_status", "sales", ["status"])
    op.create_index("ix_sales_status_date", "sales", ["status", "transaction_date"])

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("unit_cost", sa.Numeric(15, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_lines_sale_id", "sale_lines", ["sale_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_code", sa.String(32), nullable=False, unique=True),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("total", sa.Numeric(15, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchases_status", "purchases", ["status"])

    op.create_table(
        "purchase_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(15, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_lines_purchase_id", "purchase_lines", ["purchase_id"])

    op.create_table(
        "payrolls",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payroll_code", sa.String(32), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("period_month", sa.String(7), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("basic_salary", sa.Numeric(15, 2), nullable=False),
        sa.Column("overtime_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("overtime_rate", sa.Numeric(15, 2), nullable=False),
        sa.Column("overtime_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("bonus_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("allowance_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("deduction_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("gross_salary", sa.Numeric(15, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("insurance_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("other_deductions", sa.Numeric(15, 2), nullable=False),
        sa.Column("net_salary", sa.Numeric(15, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("breakdown", sa.JSON(), nullable=True),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("financial_transactions.id"), nullable=True),
        sa.Column(
            "reversal_transaction_id", sa.Integer(), sa.ForeignKey("financial_transactions.id"), nullable=True
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "period_month", name="uq_payrolls_user_period"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payrolls_user_id", "payrolls", ["user_id"])
    op.create_index("ix_payrolls_period_month", "payrolls", ["period_month"])
    op.create_index("ix_payrolls_status", "payrolls", ["status"])

    op.create_table(
        "payroll_configurations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("config_key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(16), nullable=False),
        sa.Column("applies_to", sa.String(16), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("percentage", sa.Numeric(7, 4), nullable=True),
        sa.Column("min_value", sa.Numeric(15, 2), nullable=True),
        sa.Column("max_value", sa.Numeric(15, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payroll_configurations_category", "payroll_configurations", ["category"])


def downgrade():
    op.drop_table("payroll_configurations")
    op.drop_table("payrolls")
    op.drop_table("purchase_lines")
    op.drop_table("purchases")
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_table("financial_postings")
    op.drop_table("transaction_audit_events")
    op.drop_table("cash_flows")
    op.drop_table("financial_transactions")
    op.drop_table("stock_movements")
    op.drop_table("products")
    op.drop_table("financial_accounts")
    op.drop_table("users")
