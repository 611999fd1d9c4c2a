"""
Access policy schema.

- Create titles / seasons / episodes with access-policy columns.
- Create video_sources with a one-default-per-owner partial index.
- Create subscriptions and rentals.
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic.
revision = "20261019_01_access_policy_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- Enum types ---
    content_type = sa.Enum("MOVIE", "SERIES", "ANIME", name="content_type")
    access_tier = sa.Enum("FREE", "RENT", "VIP", name="access_tier")
    source_permission = sa.Enum("WEB_AND_MOBILE", "WEB_ONLY", "MOBILE_ONLY", name="source_permission")
    source_kind = sa.Enum("IFRAME", "MP4", "HLS", name="source_kind")
    source_quality = sa.Enum("P480", "P720", "P1080", name="source_quality")
    payment_status = sa.Enum("PENDING", "COMPLETED", "FAILED", name="payment_status")

    bind = op.get_bind()
    for enum in (content_type, access_tier, source_permission, source_kind, source_quality, payment_status):
        enum.create(bind, checkfirst=True)

    # Types already created above; columns must not recreate them
    content_type_col = sa.Enum(name="content_type", create_type=False)
    access_tier_col = sa.Enum(name="access_tier", create_type=False)
    permission_col = sa.Enum(name="source_permission", create_type=False)
    kind_col = sa.Enum(name="source_kind", create_type=False)
    quality_col = sa.Enum(name="source_quality", create_type=False)
    payment_col = sa.Enum(name="payment_status", create_type=False)

    # --- titles ---
    op.create_table(
        "titles",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("type", content_type_col, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("access_tier", access_tier_col, nullable=False, server_default=sa.text("'FREE'")),
        sa.Column("rental_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("rental_period_days", sa.Integer(), nullable=True),
        sa.Column("rental_max_devices", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("exclude_from_plan", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("rental_max_devices >= 1", name="ck_titles_rental_max_devices_ge_1"),
        sa.CheckConstraint("access_tier <> 'FREE' OR exclude_from_plan = false", name="ck_titles_free_not_excluded"),
        sa.CheckConstraint(
            "access_tier <> 'RENT' OR (rental_price > 0 AND rental_period_days >= 1)",
            name="ck_titles_rent_terms_present",
        ),
    )
    op.create_index("ix_titles_type", "titles", ["type"])
    op.create_index("ix_titles_access_tier", "titles", ["access_tier"])
    op.create_index("ix_titles_type_tier", "titles", ["type", "access_tier"])

    # --- seasons ---
    op.create_table(
        "seasons",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("title_id", sa.String(length=36), sa.ForeignKey("titles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("season_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("title_id", "season_number", name="uq_seasons_title_num"),
        sa.CheckConstraint("season_number >= 0", name="ck_seasons_season_number_ge_0"),
    )
    op.create_index("ix_seasons_title_id", "seasons", ["title_id"])

    # --- episodes ---
    op.create_table(
        "episodes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("season_id", sa.String(length=36), sa.ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title_id", sa.String(length=36), sa.ForeignKey("titles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("episode_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("access_tier", access_tier_col, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("season_id", "episode_number", name="uq_episodes_season_epnum"),
        sa.CheckConstraint("episode_number >= 0", name="ck_episodes_episode_number_ge_0"),
    )
    op.create_index("ix_episodes_season_id", "episodes", ["season_id"])
    op.create_index("ix_episodes_title_id", "episodes", ["title_id"])
    op.create_index("ix_episodes_title_tier", "episodes", ["title_id", "access_tier"])

    # --- video_sources ---
    op.create_table(
        "video_sources",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("title_id", sa.String(length=36), sa.ForeignKey("titles.id", ondelete="CASCADE"), nullable=True),
        sa.Column("episode_id", sa.String(length=36), sa.ForeignKey("episodes.id", ondelete="CASCADE"), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("server_label", sa.String(length=128), nullable=False, server_default=sa.text("''")),
        sa.Column("required_tier", access_tier_col, nullable=False, server_default=sa.text("'FREE'")),
        sa.Column("permission", permission_col, nullable=False, server_default=sa.text("'WEB_AND_MOBILE'")),
        sa.Column("kind", kind_col, nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=True),
        sa.Column("quality_urls", sa.JSON(), nullable=True),
        sa.Column("default_quality", quality_col, nullable=False, server_default=sa.text("'P720'")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint(
            "(title_id IS NOT NULL) <> (episode_id IS NOT NULL)",
            name="ck_video_sources_exactly_one_owner",
        ),
    )
    op.create_index("ix_video_sources_title_id", "video_sources", ["title_id"])
    op.create_index("ix_video_sources_episode_id", "video_sources", ["episode_id"])
    op.create_index("ix_video_sources_owner_position", "video_sources", ["title_id", "episode_id", "position"])
    op.create_index(
        "uq_video_sources_default_title",
        "video_sources",
        ["title_id"],
        unique=True,
        postgresql_where=sa.text("is_default = true AND title_id IS NOT NULL"),
    )
    op.create_index(
        "uq_video_sources_default_episode",
        "video_sources",
        ["episode_id"],
        unique=True,
        postgresql_where=sa.text("is_default = true AND episode_id IS NOT NULL"),
    )

    # --- subscriptions ---
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("viewer_id", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("payment_status", payment_col, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("ends_at > starts_at", name="ck_subscriptions_ends_after_starts"),
    )
    op.create_index("ix_subscriptions_viewer_id", "subscriptions", ["viewer_id"])
    op.create_index("ix_subscriptions_viewer_active_end", "subscriptions", ["viewer_id", "is_active", "ends_at"])

    # --- rentals ---
    op.create_table(
        "rentals",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("viewer_id", sa.String(length=64), nullable=False),
        sa.Column("title_id", sa.String(length=36), sa.ForeignKey("titles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_status", payment_col, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("max_devices", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("rental_price", sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("ends_at > starts_at", name="ck_rentals_ends_after_starts"),
        sa.CheckConstraint("max_devices >= 1", name="ck_rentals_max_devices_ge_1"),
    )
    op.create_index("ix_rentals_viewer_id", "rentals", ["viewer_id"])
    op.create_index("ix_rentals_title_id", "rentals", ["title_id"])
    op.create_index("ix_rentals_viewer_title_end", "rentals", ["viewer_id", "title_id", "ends_at"])


def downgrade() -> None:
    op.drop_table("rentals")
    op.drop_table("subscriptions")
    op.drop_index("uq_video_sources_default_episode", table_name="video_sources")
    op.drop_index("uq_video_sources_default_title", table_name="video_sources")
    op.drop_table("video_sources")
    op.drop_table("episodes")
    op.drop_table("seasons")
    op.drop_table("titles")

    bind = op.get_bind()
    for name in (
        "payment_status",
        "source_quality",
        "source_kind",
        "source_permission",
        "access_tier",
        "content_type",
    ):
        sa.Enum(name=name).drop(bind, checkfirst=True)
