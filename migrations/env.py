# migrations/env.py
#
# Two entry points share this file:
#   flask --app assetdesk db upgrade   -> engine and metadata from the running app
#   DATABASE_URL=... alembic -c migrations/alembic.ini upgrade head
#                                      -> no app; metadata imported directly
from __future__ import annotations

import logging
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from assetdesk.extensions import db  # noqa: E402
from assetdesk import models  # noqa: E402,F401  registers the tables
from assetdesk.settings import _normalize_db_url  # noqa: E402

config = context.config
if config.config_file_name:
    try:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except KeyError:
        pass  # ini without logging sections

logger = logging.getLogger("alembic.env")


def _flask_migrate():
    """The Flask-Migrate extension when running under ``flask db``, else None."""
    if os.getenv("DATABASE_URL"):
        return None
    from flask import current_app

    return current_app.extensions["migrate"]


MIGRATE = _flask_migrate()


def _database_url() -> str:
    if MIGRATE is not None:
        return MIGRATE.db.engine.url.render_as_string(hide_password=False)
    url = _normalize_db_url(os.getenv("DATABASE_URL")) or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database configured. Set DATABASE_URL or run through `flask db`.")
    return url


def _skip_empty_autogenerate(ctx, revision, directives):
    cmd_opts = getattr(config, "cmd_opts", None)
    if getattr(cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []
        logger.info("No changes in schema detected.")


def _configure_args(is_sqlite: bool) -> dict:
    args = dict(MIGRATE.configure_args) if MIGRATE is not None else {}
    args.setdefault("process_revision_directives", _skip_empty_autogenerate)
    args.setdefault("compare_type", True)
    # SQLite can't ALTER most things in place
    args.setdefault("render_as_batch", is_sqlite)
    return args


def run_migrations_offline():
    url = _database_url()
    context.configure(
        url=url,
        target_metadata=db.metadata,
        literal_binds=True,
        **_configure_args(url.startswith("sqlite")),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    engine = MIGRATE.db.engine if MIGRATE is not None else create_engine(_database_url())
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=db.metadata,
            **_configure_args(connection.dialect.name == "sqlite"),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
