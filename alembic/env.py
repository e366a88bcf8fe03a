from __future__ import annotations

from logging.config import fileConfig
import os
import sys

from alembic import context

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from app.database.base import Base
from app.database.session import engine as app_engine
from app.core.auth import models as auth_models  # noqa: F401
from app.core.plans import models as plans_models  # noqa: F401
from app.core.promocodes import models as promocodes_models  # noqa: F401
from app.core.affiliates import models as affiliates_models  # noqa: F401
from app.core.payments import models as payments_models  # noqa: F401
from app.core.subscriptions import models as subscriptions_models  # noqa: F401
from app.core.recovery import models as recovery_models  # noqa: F401
from app.core.audit import models as audit_models  # noqa: F401


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = str(app_engine.url)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with app_engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
