"""
Database package for SQLAlchemy models and session management.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-102)
- 2026-10-11: Export PeriodSummary (STORY-106)

TODO:
- None
"""

from wattnet.src.db.models import Base, Device, PeriodSummary, RawReading
from wattnet.src.db.session import create_engine, create_session_factory

__all__ = [
    "Base",
    "Device",
    "PeriodSummary",
    "RawReading",
    "create_engine",
    "create_session_factory",
]
