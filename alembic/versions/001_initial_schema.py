"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # CLIENTS (monitored companies)
    op.create_table(
        "clients",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tenant_id", postgresql.UUID, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255)),
        sa.Column("description", sa.Text),
        sa.Column("industry", sa.String(255)),
        sa.Column("linkedin_url", sa.String(1000)),
        sa.Column("twitter_url", sa.String(1000)),
        sa.Column("facebook_url", sa.String(1000)),
        sa.Column("instagram_url", sa.String(1000)),
        sa.Column("custom_urls", postgresql.JSONB, server_default="[]"),
        sa.Column("keywords", postgresql.JSONB, server_default="[]"),
        sa.Column("monitor_signals", postgresql.JSONB, server_default="[]"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("cron_job_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )
    op.create_index("ix_clients_tenant_id", "clients", ["tenant_id"])

    # NICHES (monitored topics)
    op.create_table(
        "niches",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tenant_id", postgresql.UUID, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("keywords", postgresql.JSONB, server_default="[]"),
        sa.Column("sources", postgresql.JSONB, server_default="[]"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("cron_job_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
    )
    op.create_index("ix_niches_tenant_id", "niches", ["tenant_id"])

    # MONITORING_JOBS (gateway cron job -> tenant entity)
    op.create_table(
        "monitoring_jobs",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tenant_id", postgresql.UUID, nullable=False),
        sa.Column("cron_job_id", sa.String(255), unique=True, nullable=False),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("target_id", postgresql.UUID, nullable=False),
        sa.Column("schedule", sa.String(100), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True)),
        sa.Column("last_status", sa.String(50)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.CheckConstraint("job_type IN ('client', 'niche')", name="ck_monitoring_jobs_job_type"),
    )
    op.create_index("ix_monitoring_jobs_tenant_id", "monitoring_jobs", ["tenant_id"])

    # SIGNALS
    op.create_table(
        "signals",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tenant_id", postgresql.UUID, nullable=False),
        sa.Column("client_id", postgresql.UUID, sa.ForeignKey("clients.id", ondelete="CASCADE")),
        sa.Column("niche_id", postgresql.UUID, sa.ForeignKey("niches.id", ondelete="CASCADE")),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("summary", sa.Text, nullable=False, server_default=""),
        sa.Column("source_url", sa.String(2000)),
        sa.Column("source_name", sa.String(255)),
        sa.Column("confidence", sa.Float, server_default="0.5"),
        sa.Column("raw_data", postgresql.JSONB),
        sa.Column("detected_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()")),
        sa.CheckConstraint("(client_id IS NULL) <> (niche_id IS NULL)", name="ck_signals_single_owner"),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_signals_confidence_range"),
    )
    op.create_index("ix_signals_tenant_detected_at", "signals", ["tenant_id", "detected_at"])
    op.create_index("ix_signals_client_id", "signals", ["client_id"])
    op.create_index("ix_signals_niche_id", "signals", ["niche_id"])


def downgrade() -> None:
    op.drop_index("ix_signals_niche_id")
    op.drop_index("ix_signals_client_id")
    op.drop_index("ix_signals_tenant_detected_at")
    op.drop_table("signals")
    op.drop_index("ix_monitoring_jobs_tenant_id")
    op.drop_table("monitoring_jobs")
    op.drop_index("ix_niches_tenant_id")
    op.drop_table("niches")
    op.drop_index("ix_clients_tenant_id")
    op.drop_table("clients")
