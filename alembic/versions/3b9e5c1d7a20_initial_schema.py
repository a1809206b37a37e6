"""initial schema

Revision ID: 3b9e5c1d7a20
Revises:
Create Date: 2026-10-18 09:12:44.318205

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b9e5c1d7a20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names
test_category = sa.Enum(
    "POLITY",
    "HISTORY",
    "GEOGRAPHY",
    "ECONOMY",
    "SCIENCE",
    "CURRENT_AFFAIRS",
    name="testcategory",
)
payment_status = sa.Enum(
    "PENDING", "SUCCESS", "FAILED", "CANCELLED", name="paymentstatus"
)


def upgrade() -> None:
    """Create users, catalog, purchase and attempt tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "mock_tests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("test_code", sa.String(length=50), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("category", test_category, nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("highlights", sa.JSON(), nullable=True),
        sa.Column("instructions", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("duration_minutes >= 1", name="ck_mock_tests_duration"),
        sa.CheckConstraint("price >= 0", name="ck_mock_tests_price"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("test_code"),
    )
    op.create_index("ix_mock_tests_id", "mock_tests", ["id"])
    op.create_index("ix_mock_tests_category", "mock_tests", ["category"])
    op.create_index("ix_mock_tests_is_active", "mock_tests", ["is_active"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("test_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("correct_answer", sa.Integer(), nullable=False),
        sa.CheckConstraint("correct_answer >= 0", name="ck_questions_correct_answer"),
        sa.ForeignKeyConstraint(["test_id"], ["mock_tests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_questions_id", "questions", ["id"])
    op.create_index(
        "ix_questions_test_position", "questions", ["test_id", "position"]
    )

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("test_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(length=100), nullable=True),
        sa.Column("payment_id", sa.String(length=100), nullable=True),
        sa.Column("payment_status", payment_status, nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["test_id"], ["mock_tests.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_purchases_id", "purchases", ["id"])
    op.create_index("ix_purchases_user_id", "purchases", ["user_id"])
    op.create_index("ix_purchases_test_id", "purchases", ["test_id"])
    op.create_index("ix_purchases_order_id", "purchases", ["order_id"])
    op.create_index(
        "ix_purchases_order_status", "purchases", ["order_id", "payment_status"]
    )
    # At most one successful purchase per (user, test)
    op.create_index(
        "ix_purchases_user_test_success",
        "purchases",
        ["user_id", "test_id"],
        unique=True,
        postgresql_where=sa.text("payment_status = 'SUCCESS'"),
        sqlite_where=sa.text("payment_status = 'SUCCESS'"),
    )

    op.create_table(
        "attempts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("test_id", sa.Integer(), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("marked_questions", sa.JSON(), nullable=False),
        sa.Column("current_question_index", sa.Integer(), nullable=False),
        sa.Column("visited_questions", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("percentage", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "current_question_index >= 0", name="ck_attempts_question_index"
        ),
        sa.CheckConstraint(
            "percentage IS NULL OR (percentage >= 0 AND percentage <= 100)",
            name="ck_attempts_percentage_range",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["test_id"], ["mock_tests.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_attempts_id", "attempts", ["id"])
    op.create_index("ix_attempts_user_id", "attempts", ["user_id"])
    op.create_index("ix_attempts_test_id", "attempts", ["test_id"])
    op.create_index("ix_attempts_submitted_at", "attempts", ["submitted_at"])
    # Only one open attempt per (user, test)
    op.create_index(
        "ix_attempts_user_test_open",
        "attempts",
        ["user_id", "test_id"],
        unique=True,
        postgresql_where=sa.text("submitted_at IS NULL"),
        sqlite_where=sa.text("submitted_at IS NULL"),
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_index("ix_attempts_user_test_open", table_name="attempts")
    op.drop_index("ix_attempts_submitted_at", table_name="attempts")
    op.drop_index("ix_attempts_test_id", table_name="attempts")
    op.drop_index("ix_attempts_user_id", table_name="attempts")
    op.drop_index("ix_attempts_id", table_name="attempts")
    op.drop_table("attempts")

    op.drop_index("ix_purchases_user_test_success", table_name="purchases")
    op.drop_index("ix_purchases_order_status", table_name="purchases")
    op.drop_index("ix_purchases_order_id", table_name="purchases")
    op.drop_index("ix_purchases_test_id", table_name="purchases")
    op.drop_index("ix_purchases_user_id", table_name="purchases")
    op.drop_index("ix_purchases_id", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("ix_questions_test_position", table_name="questions")
    op.drop_index("ix_questions_id", table_name="questions")
    op.drop_table("questions")

    op.drop_index("ix_mock_tests_is_active", table_name="mock_tests")
    op.drop_index("ix_mock_tests_category", table_name="mock_tests")
    op.drop_index("ix_mock_tests_id", table_name="mock_tests")
    op.drop_table("mock_tests")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")

    payment_status.drop(op.get_bind(), checkfirst=True)
    test_category.drop(op.get_bind(), checkfirst=True)
