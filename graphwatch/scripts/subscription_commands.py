"""CLI commands for subscription maintenance and background work.

Usage:
    flask renew-subscriptions                 # One renewal tick
    flask dispatch-outbox                     # Drain ready outbox messages once
    flask purge-fingerprints                  # Drop expired dedupe fingerprints
    flask purge-subscriptions --days 30       # Delete long-inactive records
    flask create-subscription --resource /users/alice@example.com/events
    flask issue-admin-token --identity ops --role subscriptions:write
"""

from __future__ import annotations

import json
from datetime import timedelta

import click
from flask.cli import with_appcontext
from flask_jwt_extended import create_access_token

from graphwatch.core.errors import FatalUpstream, TransientUpstream
from graphwatch.services import get_services


@click.command("renew-subscriptions")
@with_appcontext
def renew_subscriptions_command():
    """Run one renewal tick over subscriptions inside the lookahead window."""
    report = get_services().lifecycle.tick()
    click.echo(
        f"Claimed {report.claimed} | Renewed {report.renewed}, "
        f"Deferred {report.deferred}, Expired {report.expired}"
    )


@click.command("dispatch-outbox")
@click.option("--batches", "-b", type=int, default=1, show_default=True, help="Batches to drain")
@with_appcontext
def dispatch_outbox_command(batches: int):
    """Process ready outbox messages (work items, change events, alerts)."""
    from graphwatch.platform.worker.dispatcher import dispatch_ready

    services = get_services()
    total = 0
    for _ in range(max(batches, 1)):
        processed = dispatch_ready(services.router, services.dispatch_config)
        total += processed
        if processed == 0:
            break
    click.echo(f"Processed {total} outbox message(s)")


@click.command("purge-fingerprints")
@with_appcontext
def purge_fingerprints_command():
    """Delete dedupe fingerprints past their retention window."""
    from graphwatch.domains.notifications.tasks import purge_expired_fingerprints

    removed = purge_expired_fingerprints()
    click.echo(f"Purged {removed} fingerprint(s)")


@click.command("purge-subscriptions")
@click.option("--days", "-d", type=int, default=30, show_default=True, help="Inactive for at least N days")
@with_appcontext
def purge_subscriptions_command(days: int):
    """Physically delete subscriptions that have been inactive for N days."""
    removed = get_services().subscription_service.purge_inactive(days)
    click.echo(f"Purged {removed} subscription(s)")


@click.command("create-subscription")
@click.option("--resource", "-r", required=True, help="Resource path, e.g. /users/{id}/events")
@click.option("--change-types", "-c", default=None, help="Comma separated, default from config")
@click.option("--minutes", "-m", type=int, default=None, help="Requested lifetime in minutes")
@with_appcontext
def create_subscription_command(resource: str, change_types: str | None, minutes: int | None):
    """Register a subscription upstream and store it locally."""
    try:
        row = get_services().subscription_service.create(
            resource, change_types=change_types, expiration_minutes=minutes
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    except (TransientUpstream, FatalUpstream) as exc:
        raise click.ClickException(f"Upstream refused the subscription: {exc}")
    click.echo(f"  ✓ Subscription {row.id} on {row.resource_path} expires {row.expires_at.isoformat()}")


@click.command("issue-admin-token")
@click.option("--identity", "-i", default="operator", show_default=True)
@click.option("--role", "roles", multiple=True, default=("admin",), show_default=True)
@click.option("--hours", type=int, default=1, show_default=True)
@with_appcontext
def issue_admin_token_command(identity: str, roles: tuple, hours: int):
    """Print a bearer token for the subscription admin API."""
    token = create_access_token(
        identity=identity,
        additional_claims={"roles": list(roles)},
        expires_delta=timedelta(hours=hours),
    )
    click.echo(json.dumps({"access_token": token, "roles": list(roles)}))


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(renew_subscriptions_command)
    app.cli.add_command(dispatch_outbox_command)
    app.cli.add_command(purge_fingerprints_command)
    app.cli.add_command(purge_subscriptions_command)
    app.cli.add_command(create_subscription_command)
    app.cli.add_command(issue_admin_token_command)
