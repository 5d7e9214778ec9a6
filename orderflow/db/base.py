"""Shared SQLAlchemy base declarative class and model imports."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for ORM models."""


# Import model modules so metadata is populated before create_all.
from orderflow.models import cart as _cart  # noqa: E402,F401
from orderflow.models import casso_transaction as _casso_transaction  # noqa: E402,F401
from orderflow.models import inventory as _inventory  # noqa: E402,F401
from orderflow.models import order as _order  # noqa: E402,F401
from orderflow.models import reconcile_task as _reconcile_task  # noqa: E402,F401
