"""create subscription, snapshot, fingerprint and outbox tables

Revision ID: 20261017_graphwatch_initial
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261017_graphwatch_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "graph_subscription",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("resource_path", sa.String(length=512), nullable=False),
        sa.Column(
            "change_types",
            sa.String(length=64),
            nullable=False,
            server_default="created,updated,deleted",
        ),
        sa.Column("client_state", sa.String(length=128), nullable=False),
        sa.Column("notification_endpoint", sa.String(length=1024), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("renewal_started_at", sa.DateTime()),
        sa.Column("last_renewed_at", sa.DateTime()),
        sa.Column("renewal_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.String(length=1024)),
        sa.Column("deactivated_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_graph_subscription_active_expiry",
        "graph_subscription",
        ["active", "state", "expires_at"],
    )

    op.create_table(
        "resource_snapshot",
        sa.Column("resource_id", sa.String(length=512), primary_key=True),
        sa.Column("etag", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("attendee_states", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("captured_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )

    op.create_table(
        "notification_fingerprint",
        sa.Column("fingerprint", sa.String(length=64), primary_key=True),
        sa.Column("subscription_id", sa.String(length=128)),
        sa.Column("resource_id", sa.String(length=512)),
        sa.Column("etag", sa.String(length=256)),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_notification_fingerprint_expires_at",
        "notification_fingerprint",
        ["expires_at"],
    )

    op.create_table(
        "platform_outbox",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_platform_outbox_event_type", "platform_outbox", ["event_type"])
    op.create_index(
        "ix_platform_outbox_status_available_at",
        "platform_outbox",
        ["status", "available_at"],
    )


def downgrade():
    op.drop_index("ix_platform_outbox_status_available_at", table_name="platform_outbox")
    op.drop_index("ix_platform_outbox_event_type", table_name="platform_outbox")
    op.drop_table("platform_outbox")
    op.drop_index("ix_notification_fingerprint_expires_at", table_name="notification_fingerprint")
    op.drop_table("notification_fingerprint")
    op.drop_table("resource_snapshot")
    op.drop_index("ix_graph_subscription_active_expiry", table_name="graph_subscription")
    op.drop_table("graph_subscription")
