"""create users, hives, devices and readings tables"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4f1d2c8e9a10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "hives",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("location", sa.String(length=120), nullable=False, server_default=""),
    )
    op.create_index(op.f("ix_hives_owner_id"), "hives", ["owner_id"], unique=False)

    op.create_table(
        "devices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "hive_id",
            sa.String(length=32),
            sa.ForeignKey("hives.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="manual"),
        sa.Column("dev_eui", sa.String(length=16), nullable=True),
        sa.Column("api_key", sa.String(length=128), nullable=True),
        sa.Column("last_seen", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("signal_strength", sa.Float(), nullable=True),
        sa.Column("battery_level", sa.Integer(), nullable=True),
    )
    op.create_index(op.f("ix_devices_dev_eui"), "devices", ["dev_eui"], unique=True)
    op.create_index(op.f("ix_devices_api_key"), "devices", ["api_key"], unique=False)

    op.create_table(
        "readings",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("hive_id", sa.String(length=32), nullable=False),
        sa.Column(
            "ts",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("temperature", sa.Float(), nullable=False),
        sa.Column("humidity", sa.Float(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("battery_level", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("signal_strength", sa.Float(), nullable=True),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="WiFi"),
        sa.Column("meta", postgresql.JSONB, nullable=True),
    )
    op.create_index(op.f("ix_readings_hive_id"), "readings", ["hive_id"], unique=False)
    op.create_index(op.f("ix_readings_ts"), "readings", ["ts"], unique=False)
    op.create_index(
        "ix_readings_hive_ts_desc",
        "readings",
        ["hive_id", "ts"],
        unique=False,
        postgresql_using="btree",
        postgresql_ops={"ts": "DESC"},
    )


def downgrade() -> None:
    op.drop_index("ix_readings_hive_ts_desc", table_name="readings")
    op.drop_index(op.f("ix_readings_ts"), table_name="readings")
    op.drop_index(op.f("ix_readings_hive_id"), table_name="readings")
    op.drop_table("readings")

    op.drop_index(op.f("ix_devices_api_key"), table_name="devices")
    op.drop_index(op.f("ix_devices_dev_eui"), table_name="devices")
    op.drop_table("devices")

    op.drop_index(op.f("ix_hives_owner_id"), table_name="hives")
    op.drop_table("hives")

    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
