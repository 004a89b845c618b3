"""Database module for SQLAlchemy models and session management."""

from app.database.base import Base, async_session_maker, engine
from app.database.client import DatabaseClient, db_client, init_database, close_database
from app.database.models import (
    BatchProcess,
    BatchProcessFile,
    CompanyDetectionHistory,
    CompanyDetectionRule,
    WorkOrder,
)

__all__ = [
    "Base",
    "engine",
    "async_session_maker",
    "DatabaseClient",
    "db_client",
    "init_database",
    "close_database",
    "BatchProcess",
    "BatchProcessFile",
    "WorkOrder",
    "CompanyDetectionRule",
    "CompanyDetectionHistory",
]
