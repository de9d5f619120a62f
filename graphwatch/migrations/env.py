"""Alembic environment for graphwatch.

Runs both under `flask db ...` (Flask-Migrate, app context already pushed) and
plain `alembic -c alembic.ini ...`, where the app is built from the
`graphwatch_env` option unless `sqlalchemy.url` is given explicitly.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from flask import current_app, has_app_context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine.url import make_url

from graphwatch.extensions import db

config = context.config

if config.config_file_name:
    try:
        # Keep application loggers (graphwatch.security among them) enabled.
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except (KeyError, FileNotFoundError):
        # Flask-Migrate's generated ini may be missing or lack logging sections
        pass


def _metadata():
    # Importing the models registers every table on db.metadata.
    from graphwatch.domains.notifications import models as _notification_models  # noqa: F401
    from graphwatch.domains.subscriptions import models as _subscription_models  # noqa: F401
    from graphwatch.platform.outbox import models as _outbox_models  # noqa: F401

    return db.metadata


def get_url() -> str:
    explicit = config.get_main_option("sqlalchemy.url")
    if explicit:
        return explicit
    if has_app_context():
        return current_app.config["SQLALCHEMY_DATABASE_URI"]
    from graphwatch import create_app

    app = create_app(config.get_main_option("graphwatch_env", "development"))
    return app.config["SQLALCHEMY_DATABASE_URI"]


def _configure(dialect: str, **kwargs) -> None:
    context.configure(
        target_metadata=_metadata(),
        compare_type=True,
        # SQLite cannot ALTER most constraints in place.
        render_as_batch=dialect == "sqlite",
        **kwargs,
    )


def run_migrations_offline() -> None:
    url = get_url()
    _configure(make_url(url).get_backend_name(), url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        _configure(connection.dialect.name, connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
