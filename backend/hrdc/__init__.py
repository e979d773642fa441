# backend/hrdc/__init__.py
"""
Import ORM models from each app so that Alembic and
Base.metadata.create_all() see every table.

The actual model classes are kept in hrdc/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # users / roles / settings
from .apps.employees import models as employees_models        # employee profiles
from .apps.training import models as training_models          # programs, registrations, attendance
from .apps.notifications import models as notifications_models  # in-app notifications + email log
from .apps.help import models as help_models                  # employee help desk queries

__all__ = [
    "accounts_models",
    "employees_models",
    "training_models",
    "notifications_models",
    "help_models",
]
