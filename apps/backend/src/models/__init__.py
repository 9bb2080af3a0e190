"""Expose commonly used ORM models at package level.

These re-exports are intentional so callers can import from
``models`` (e.g. `from models import Page`). Importing every module here
also registers all mappers before relationships are resolved.
"""

from .books import Book, Chapter  # noqa: F401
from .pages import Page  # noqa: F401
from .users import User  # noqa: F401
