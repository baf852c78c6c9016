"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend is used
in tests and for running without credentials.
"""

from shopbooks.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DataSourceError,
    FinancialDataSource,
    GoalStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    SalesDataSource,
)
from shopbooks.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDataSource,
)
from shopbooks.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDataSource,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "FinancialDataSource",
    "GoalStorageInterface",
    "LedgerStorageInterface",
    "SalesDataSource",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DataSourceError",
    "NotFoundError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDataSource",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDataSource",
]
