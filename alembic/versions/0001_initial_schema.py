"""initial jackpot schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
MONEY = sa.Numeric(18, 2)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=True),
        sa.Column("game_balance", MONEY, nullable=False),
        sa.Column("lucky_draw_wallet", MONEY, nullable=False),
        sa.Column("lucky_balance", MONEY, nullable=False),
        sa.Column("auto_lucky_draw", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("wallet_address", name=op.f("uq_users_wallet_address")),
    )

    op.create_table(
        "jackpot_rounds",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("ticket_price", MONEY, nullable=False),
        sa.Column("total_tickets", sa.Integer(), nullable=False),
        sa.Column("tickets_sold", sa.Integer(), nullable=False),
        sa.Column("total_revenue", MONEY, nullable=False),
        sa.Column("total_prize_pool", MONEY, nullable=False),
        sa.Column("total_paid_out", MONEY, nullable=False),
        sa.Column("surplus", MONEY, nullable=False),
        sa.Column("surplus_withdrawn", sa.Boolean(), nullable=False),
        sa.Column("surplus_withdrawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("surplus_withdrawn_by", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("draw_seed", sa.String(length=128), nullable=True),
        sa.Column("draw_executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("draw_executed_by", sa.String(length=64), nullable=True),
        sa.Column("draw_method", sa.String(length=20), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("updated_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "status IN ('active','drawing','completed')",
            name=op.f("ck_jackpot_rounds_status_enum"),
        ),
        sa.CheckConstraint(
            "draw_method IS NULL OR draw_method IN ('automatic','manual')",
            name=op.f("ck_jackpot_rounds_draw_method_enum"),
        ),
        sa.CheckConstraint(
            "ticket_price > 0", name=op.f("ck_jackpot_rounds_ticket_price_positive")
        ),
        sa.CheckConstraint(
            "total_tickets > 0", name=op.f("ck_jackpot_rounds_total_tickets_positive")
        ),
        sa.CheckConstraint(
            "tickets_sold >= 0 AND tickets_sold <= total_tickets",
            name=op.f("ck_jackpot_rounds_tickets_sold_within_capacity"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_jackpot_rounds")),
        sa.UniqueConstraint("round_number", name=op.f("uq_jackpot_rounds_round_number")),
    )
    op.create_index(
        "ix_jackpot_rounds_status_number",
        "jackpot_rounds",
        ["status", "round_number"],
        unique=False,
    )

    op.create_table(
        "jackpot_tickets",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_id", ID, nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("ticket_code", sa.String(length=32), nullable=False),
        sa.Column("user_id", ID, nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["jackpot_rounds.id"],
            name=op.f("fk_jackpot_tickets_round_id_jackpot_rounds"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_jackpot_tickets_user_id_users"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_jackpot_tickets")),
        sa.UniqueConstraint("ticket_code", name=op.f("uq_jackpot_tickets_ticket_code")),
        sa.UniqueConstraint("round_id", "sequence", name="uq_jackpot_ticket_sequence"),
    )
    op.create_index(
        op.f("ix_jackpot_tickets_user_id"), "jackpot_tickets", ["user_id"], unique=False
    )

    op.create_table(
        "jackpot_winners",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_id", ID, nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("user_id", ID, nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("ticket_code", sa.String(length=32), nullable=False),
        sa.Column("rank", sa.String(length=32), nullable=False),
        sa.Column("prize", MONEY, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending','completed','failed')",
            name=op.f("ck_jackpot_winners_winner_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["jackpot_rounds.id"],
            name=op.f("fk_jackpot_winners_round_id_jackpot_rounds"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_jackpot_winners")),
        sa.UniqueConstraint("round_id", "position", name="uq_jackpot_winner_position"),
    )
    op.create_index(
        op.f("ix_jackpot_winners_user_id"), "jackpot_winners", ["user_id"], unique=False
    )

    op.create_table(
        "jackpot_parameter_changes",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("round_id", ID, nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("old_value", sa.String(length=64), nullable=True),
        sa.Column("new_value", sa.String(length=64), nullable=True),
        sa.Column("changed_by", sa.String(length=64), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["jackpot_rounds.id"],
            name=op.f("fk_jackpot_parameter_changes_round_id_jackpot_rounds"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_jackpot_parameter_changes")),
    )
    op.create_index(
        op.f("ix_jackpot_parameter_changes_round_id"),
        "jackpot_parameter_changes",
        ["round_id"],
        unique=False,
    )

    op.create_table(
        "system_config",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key", sa.String(length=32), nullable=False),
        sa.Column("pause_registrations", sa.Boolean(), nullable=False),
        sa.Column("pause_deposits", sa.Boolean(), nullable=False),
        sa.Column("pause_withdrawals", sa.Boolean(), nullable=False),
        sa.Column("pause_lucky_draw", sa.Boolean(), nullable=False),
        sa.Column("maintenance_mode", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_system_config")),
        sa.UniqueConstraint("key", name=op.f("uq_system_config_key")),
    )


def downgrade() -> None:
    op.drop_table("system_config")
    op.drop_index(
        op.f("ix_jackpot_parameter_changes_round_id"),
        table_name="jackpot_parameter_changes",
    )
    op.drop_table("jackpot_parameter_changes")
    op.drop_index(op.f("ix_jackpot_winners_user_id"), table_name="jackpot_winners")
    op.drop_table("jackpot_winners")
    op.drop_index(op.f("ix_jackpot_tickets_user_id"), table_name="jackpot_tickets")
    op.drop_table("jackpot_tickets")
    op.drop_index("ix_jackpot_rounds_status_number", table_name="jackpot_rounds")
    op.drop_table("jackpot_rounds")
    op.drop_table("users")
