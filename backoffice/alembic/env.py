"""
Migrations du backoffice.

L'URL vient TOUJOURS de backoffice.app.core.config (env / .env), jamais de
alembic.ini : une seule source de vérité pour l'app, les tests et les migrations.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# env.py vit dans backoffice/alembic/ : la racine du dépôt doit être importable
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from backoffice.app.core.config import settings  # noqa: E402
from backoffice.app.db.base import Base  # noqa: E402
from backoffice.app.db.models import models_v1  # noqa: F401,E402  (tables enregistrées sur Base.metadata)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata


def _configure_kwargs(url: str) -> dict:
    kwargs = {"target_metadata": target_metadata, "compare_type": True}
    # SQLite : ALTER limité, Alembic recrée les tables
    if url.startswith("sqlite"):
        kwargs["render_as_batch"] = True
    return kwargs


def run_migrations_offline(url: str) -> None:
    """SQL généré sans connexion (alembic upgrade --sql)."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


url = settings.DATABASE_URL
logger.info("migrating %s", url.rsplit("@", 1)[-1])

if context.is_offline_mode():
    run_migrations_offline(url)
else:
    run_migrations_online(url)
