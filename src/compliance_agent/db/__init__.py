"""Database layer for Compliance Agent."""

from compliance_agent.db import base, tables
from compliance_agent.db.base import Base, get_session_factory

__all__ = ["Base", "base", "get_session_factory", "tables"]
