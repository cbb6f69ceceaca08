"""create openpro sync tables"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251203_01"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = True) -> list:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return cols


def upgrade() -> None:
    op.create_table(
        "accommodations",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "accommodation_external_ids",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("accommodation_id", sa.String(length=32), sa.ForeignKey("accommodations.id"), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("accommodation_id", "platform", name="uq_accommodation_external_ids_platform"),
    )
    op.create_index(
        "ix_accommodation_external_ids_accommodation_id",
        "accommodation_external_ids",
        ["accommodation_id"],
    )

    op.create_table(
        "rate_plans",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("external_id", sa.Integer(), nullable=True, unique=True),
        sa.Column("label", sa.JSON(), nullable=True),
        sa.Column("description", sa.JSON(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "accommodation_rate_plan_links",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("accommodation_id", sa.String(length=32), sa.ForeignKey("accommodations.id"), nullable=False),
        sa.Column("rate_plan_id", sa.String(length=32), sa.ForeignKey("rate_plans.id"), nullable=False),
        sa.Column("rate_plan_external_id", sa.Integer(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("accommodation_id", "rate_plan_id", name="uq_accommodation_rate_plan_links_pair"),
    )
    op.create_index(
        "ix_accommodation_rate_plan_links_accommodation_id",
        "accommodation_rate_plan_links",
        ["accommodation_id"],
    )
    op.create_index(
        "ix_accommodation_rate_plan_links_rate_plan_id",
        "accommodation_rate_plan_links",
        ["rate_plan_id"],
    )

    op.create_table(
        "pricing_points",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("accommodation_id", sa.String(length=32), sa.ForeignKey("accommodations.id"), nullable=False),
        sa.Column("rate_plan_id", sa.String(length=32), sa.ForeignKey("rate_plans.id"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("min_stay", sa.Integer(), nullable=True),
        sa.Column("max_stay", sa.Integer(), nullable=True),
        sa.Column("arrival_allowed", sa.Boolean(), nullable=True),
        sa.Column("departure_allowed", sa.Boolean(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_pricing_points_key",
        "pricing_points",
        ["accommodation_id", "rate_plan_id", "day"],
        unique=True,
    )
    op.create_index(
        "idx_pricing_points_accommodation_day",
        "pricing_points",
        ["accommodation_id", "day"],
    )

    op.create_table(
        "stock_points",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("accommodation_id", sa.String(length=32), sa.ForeignKey("accommodations.id"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_stock_points_key", "stock_points", ["accommodation_id", "day"], unique=True)

    op.create_table(
        "local_bookings",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("accommodation_id", sa.String(length=32), sa.ForeignKey("accommodations.id"), nullable=False),
        sa.Column("arrival_date", sa.Date(), nullable=False),
        sa.Column("departure_date", sa.Date(), nullable=False),
        sa.Column("client_last_name", sa.String(length=128), nullable=True),
        sa.Column("client_first_name", sa.String(length=128), nullable=True),
        sa.Column("client_email", sa.String(length=255), nullable=True),
        sa.Column("client_phone", sa.String(length=64), nullable=True),
        sa.Column("persons", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("total_amount", sa.Float(), nullable=True),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("platform", sa.String(length=32), nullable=False, server_default="Directe"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="Quote"),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("departure_date > arrival_date", name="ck_local_bookings_dates"),
        sa.CheckConstraint("persons > 0", name="ck_local_bookings_persons"),
    )
    op.create_index("idx_local_bookings_accommodation", "local_bookings", ["supplier_id", "accommodation_id"])
    op.create_index("idx_local_bookings_dates", "local_bookings", ["arrival_date", "departure_date"])
    op.create_index("idx_local_bookings_reference_platform", "local_bookings", ["reference", "platform"])
    op.create_index("idx_local_bookings_synced_at", "local_bookings", ["synced_at"])

    op.create_table(
        "ical_sync_configs",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("accommodation_id", sa.String(length=32), sa.ForeignKey("accommodations.id"), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("import_url", sa.Text(), nullable=True),
        sa.Column("export_url", sa.Text(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("accommodation_id", "platform", name="uq_ical_sync_configs_platform"),
    )
    op.create_index("ix_ical_sync_configs_accommodation_id", "ical_sync_configs", ["accommodation_id"])

    op.create_table(
        "ical_cache_entries",
        sa.Column("key", sa.String(length=255), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("ical_cache_entries")
    op.drop_index("ix_ical_sync_configs_accommodation_id", table_name="ical_sync_configs")
    op.drop_table("ical_sync_configs")
    op.drop_index("idx_local_bookings_synced_at", table_name="local_bookings")
    op.drop_index("idx_local_bookings_reference_platform", table_name="local_bookings")
    op.drop_index("idx_local_bookings_dates", table_name="local_bookings")
    op.drop_index("idx_local_bookings_accommodation", table_name="local_bookings")
    op.drop_table("local_bookings")
    op.drop_index("idx_stock_points_key", table_name="stock_points")
    op.drop_table("stock_points")
    op.drop_index("idx_pricing_points_accommodation_day", table_name="pricing_points")
    op.drop_index("idx_pricing_points_key", table_name="pricing_points")
    op.drop_table("pricing_points")
    op.drop_index("ix_accommodation_rate_plan_links_rate_plan_id", table_name="accommodation_rate_plan_links")
    op.drop_index("ix_accommodation_rate_plan_links_accommodation_id", table_name="accommodation_rate_plan_links")
    op.drop_table("accommodation_rate_plan_links")
    op.drop_table("rate_plans")
    op.drop_index("ix_accommodation_external_ids_accommodation_id", table_name="accommodation_external_ids")
    op.drop_table("accommodation_external_ids")
    op.drop_table("accommodations")
