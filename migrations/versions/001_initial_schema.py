"""Initial schema: account directory, vehicle registry and the four ledgers.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACCOUNT_STATUS = postgresql.ENUM("active", "inactive", "suspended", name="accountstatus", create_type=False)
VEHICLE_TYPE = postgresql.ENUM("4 people car", "6 people car", "motor", "van", name="vehicletype", create_type=False)
VEHICLE_STATUS = postgresql.ENUM("active", "inactive", name="vehiclestatus", create_type=False)
BOOKING_STATUS = postgresql.ENUM("requested", "accepted", "cancelled", name="bookingstatus", create_type=False)
RIDE_STATUS = postgresql.ENUM("accepted", "ongoing", "completed", "cancelled", name="ridestatus", create_type=False)
CANCELLED_BY = postgresql.ENUM("rider", "driver", "admin", name="cancelledby", create_type=False)
PAYMENT_METHOD = postgresql.ENUM("cash", "bank", "credit_card", name="paymentmethod", create_type=False)
PAYMENT_STATUS = postgresql.ENUM("pending", "success", name="paymentstatus", create_type=False)

ENUMS = (
    ACCOUNT_STATUS,
    VEHICLE_TYPE,
    VEHICLE_STATUS,
    BOOKING_STATUS,
    RIDE_STATUS,
    CANCELLED_BY,
    PAYMENT_METHOD,
    PAYMENT_STATUS,
)


def _account_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("status", ACCOUNT_STATUS, nullable=False, server_default="active"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # Shared enum types are created once, up front; columns only reference them.
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ── account directory ─────────────────────────────────────────────
    op.create_table("riders", *_account_columns())
    op.create_table(
        "drivers",
        *_account_columns(),
        sa.Column("rating_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating_sum", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_table("admins", *_account_columns())

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("plate_number", sa.String(20), nullable=False),
        sa.Column("brand", sa.String(60), nullable=True),
        sa.Column("model", sa.String(60), nullable=True),
        sa.Column("color", sa.String(30), nullable=True),
        sa.Column("status", VEHICLE_STATUS, nullable=False, server_default="active"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_vehicles_driver_status", "vehicles", ["driver_id", "status"]
    )

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=False),
        sa.Column("pickup_location", sa.String(255), nullable=False),
        sa.Column("dropoff_location", sa.String(255), nullable=False),
        sa.Column("requested_vehicle_type", VEHICLE_TYPE, nullable=False),
        sa.Column("estimated_distance", sa.Float, nullable=False),
        sa.Column("estimated_fare", sa.Float, nullable=False),
        sa.Column("status", BOOKING_STATUS, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_rider", "bookings", ["rider_id"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id",
            sa.Integer,
            sa.ForeignKey("bookings.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=False),
        sa.Column("distance", sa.Float, nullable=False),
        sa.Column("fare", sa.Float, nullable=False),
        sa.Column("status", RIDE_STATUS, nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", CANCELLED_BY, nullable=True),
        sa.Column("duration", sa.Integer, nullable=True),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_rider", "rides", ["rider_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id", sa.Integer, sa.ForeignKey("rides.id"), unique=True, nullable=False
        ),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=True),
        sa.Column("transaction_reference", sa.String(128), nullable=True),
        sa.Column("status", PAYMENT_STATUS, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_payments_rider", "payments", ["rider_id"])

    # ── ratings ───────────────────────────────────────────────────────
    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("aggregated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("ride_id", "rider_id", name="uq_ratings_ride_rider"),
    )
    op.create_index("idx_ratings_aggregated", "ratings", ["aggregated"])


def downgrade() -> None:
    op.drop_table("ratings")
    op.drop_table("payments")
    op.drop_table("rides")
    op.drop_table("bookings")
    op.drop_table("vehicles")
    op.drop_table("admins")
    op.drop_table("drivers")
    op.drop_table("riders")
    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
