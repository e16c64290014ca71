"""initial raffle schema

Revision ID: 0001
Revises:
Create Date: 2024-01-01 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=60), nullable=False),
        sa.Column("is_staff", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("username", name=op.f("uq_users_username")),
    )

    op.create_table(
        "raffles",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("owner_user_id", ID_TYPE, nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("drawing_mode", sa.String(length=20), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "state IN ('active','finished')", name=op.f("ck_raffles_state_enum")
        ),
        sa.CheckConstraint(
            "drawing_mode IN ('automatic','manual')",
            name=op.f("ck_raffles_drawing_mode_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["owner_user_id"],
            ["users.id"],
            name=op.f("fk_raffles_owner_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffles")),
    )
    op.create_index(op.f("ix_raffles_owner_user_id"), "raffles", ["owner_user_id"])
    op.create_index("ix_raffles_state_ends_at", "raffles", ["state", "ends_at"])

    op.create_table(
        "raffle_packets",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_id", ID_TYPE, nullable=False),
        sa.Column("ordinal", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("reserved", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.CheckConstraint("quantity >= 1", name=op.f("ck_raffle_packets_quantity_positive")),
        sa.CheckConstraint("ordinal >= 0", name=op.f("ck_raffle_packets_ordinal_non_negative")),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_raffle_packets_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffle_packets")),
        sa.UniqueConstraint("raffle_id", "ordinal", name="uq_raffle_packet_ordinal"),
    )
    op.create_index(op.f("ix_raffle_packets_raffle_id"), "raffle_packets", ["raffle_id"])
    op.create_index("ix_raffle_packets_state", "raffle_packets", ["state"])

    op.create_table(
        "raffle_tickets",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("packet_id", ID_TYPE, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["packet_id"],
            ["raffle_packets.id"],
            name=op.f("fk_raffle_tickets_packet_id_raffle_packets"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_raffle_tickets_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffle_tickets")),
        sa.UniqueConstraint("packet_id", "user_id", name="uq_raffle_ticket_per_user"),
    )
    op.create_index(op.f("ix_raffle_tickets_packet_id"), "raffle_tickets", ["packet_id"])
    op.create_index(op.f("ix_raffle_tickets_user_id"), "raffle_tickets", ["user_id"])

    op.create_table(
        "packet_winners",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("packet_id", ID_TYPE, nullable=False),
        sa.Column("winner_user_id", ID_TYPE, nullable=False),
        sa.Column("instance_number", sa.Integer(), nullable=False),
        sa.Column("won_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fulfillment_state", sa.String(length=20), nullable=False),
        sa.CheckConstraint(
            "instance_number > 0", name=op.f("ck_packet_winners_instance_number_positive")
        ),
        sa.ForeignKeyConstraint(
            ["packet_id"],
            ["raffle_packets.id"],
            name=op.f("fk_packet_winners_packet_id_raffle_packets"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["winner_user_id"],
            ["users.id"],
            name=op.f("fk_packet_winners_winner_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_packet_winners")),
        sa.UniqueConstraint("packet_id", "instance_number", name="uq_packet_winner_instance"),
        sa.UniqueConstraint("packet_id", "winner_user_id", name="uq_packet_winner_user"),
    )
    op.create_index(op.f("ix_packet_winners_packet_id"), "packet_winners", ["packet_id"])
    op.create_index(
        op.f("ix_packet_winners_winner_user_id"), "packet_winners", ["winner_user_id"]
    )

    op.create_table(
        "raffle_draw_results",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_id", ID_TYPE, nullable=False),
        sa.Column("mode", sa.String(length=20), nullable=False),
        sa.Column("seed", sa.String(length=128), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("drawn_by_user_id", ID_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "mode IN ('automatic','manual','no_participants')",
            name=op.f("ck_raffle_draw_results_mode_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_raffle_draw_results_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["drawn_by_user_id"],
            ["users.id"],
            name=op.f("fk_raffle_draw_results_drawn_by_user_id_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffle_draw_results")),
        sa.UniqueConstraint("raffle_id", name="uq_raffle_draw_result_raffle"),
    )


def downgrade() -> None:
    op.drop_table("raffle_draw_results")
    op.drop_index(op.f("ix_packet_winners_winner_user_id"), table_name="packet_winners")
    op.drop_index(op.f("ix_packet_winners_packet_id"), table_name="packet_winners")
    op.drop_table("packet_winners")
    op.drop_index(op.f("ix_raffle_tickets_user_id"), table_name="raffle_tickets")
    op.drop_index(op.f("ix_raffle_tickets_packet_id"), table_name="raffle_tickets")
    op.drop_table("raffle_tickets")
    op.drop_index("ix_raffle_packets_state", table_name="raffle_packets")
    op.drop_index(op.f("ix_raffle_packets_raffle_id"), table_name="raffle_packets")
    op.drop_table("raffle_packets")
    op.drop_index("ix_raffles_state_ends_at", table_name="raffles")
    op.drop_index(op.f("ix_raffles_owner_user_id"), table_name="raffles")
    op.drop_table("raffles")
    op.drop_table("users")
