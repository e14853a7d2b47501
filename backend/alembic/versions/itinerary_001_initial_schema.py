"""Itinerary: trips, caps, preferences, segments, quotes, events

Revision ID: itinerary_001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "itinerary_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- trips ---
    op.create_table(
        "trips",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("title", sa.String(255)),
        sa.Column("origin", sa.String(100), nullable=False),
        sa.Column("destination", sa.String(100), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("currency", sa.String(3), server_default="INR"),
        sa.Column("total_budget", sa.Numeric(12, 2), nullable=False),
        sa.Column("activity_slots", sa.Integer, server_default="1"),
        sa.Column("status", sa.String(20), server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("end_date >= start_date", name="ck_trips_dates"),
        sa.CheckConstraint("total_budget > 0", name="ck_trips_budget_positive"),
    )
    op.create_index("idx_trips_status", "trips", ["status"])

    # --- budget_caps ---
    op.create_table(
        "budget_caps",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("cap", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("trip_id", "category", name="uq_budget_caps_trip_category"),
        sa.CheckConstraint("cap >= 0", name="ck_budget_caps_non_negative"),
    )

    # --- trip_preferences ---
    op.create_table(
        "trip_preferences",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("weight_cost", sa.Float, nullable=False),
        sa.Column("weight_time", sa.Float, nullable=False),
        sa.Column("weight_comfort", sa.Float, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- segments ---
    op.create_table(
        "segments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("provider", sa.String(200), nullable=False),
        sa.Column("start_ts", sa.DateTime, nullable=False),
        sa.Column("end_ts", sa.DateTime, nullable=False),
        sa.Column("duration_min", sa.Integer, nullable=False),
        sa.Column("comfort_score", sa.Numeric(4, 2), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="INR"),
        sa.Column("locked", sa.Boolean, server_default="false"),
        sa.Column("status", sa.String(20), server_default="planned"),
        sa.Column("attributes", JSONB, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("price >= 0", name="ck_segments_price"),
        sa.CheckConstraint("comfort_score >= 0 AND comfort_score <= 10", name="ck_segments_comfort"),
    )
    op.create_index("idx_segments_trip_start", "segments", ["trip_id", "start_ts"])

    # --- quotes ---
    op.create_table(
        "quotes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("segment_id", UUID(as_uuid=True), sa.ForeignKey("segments.id", ondelete="SET NULL")),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("source", sa.String(200), nullable=False),
        sa.Column("title", sa.String(300)),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="INR"),
        sa.Column("duration_min", sa.Integer, nullable=False),
        sa.Column("comfort_score", sa.Numeric(4, 2), nullable=False),
        sa.Column("attributes", JSONB, server_default="{}"),
        sa.Column("sequence", sa.Integer, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("price >= 0", name="ck_quotes_price"),
        sa.CheckConstraint("comfort_score >= 0 AND comfort_score <= 10", name="ck_quotes_comfort"),
    )
    op.create_index("idx_quotes_trip_category", "quotes", ["trip_id", "category"])
    op.create_index("idx_quotes_segment", "quotes", ["segment_id"])

    # --- trip_events ---
    op.create_table(
        "trip_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("payload", JSONB, server_default="{}"),
        sa.Column("severity", sa.String(10), server_default="info"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_trip_events_trip_kind", "trip_events", ["trip_id", "kind", "created_at"])


def downgrade() -> None:
    op.drop_table("trip_events")
    op.drop_table("quotes")
    op.drop_table("segments")
    op.drop_table("trip_preferences")
    op.drop_table("budget_caps")
    op.drop_table("trips")
