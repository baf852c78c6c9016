"""Services package."""

from shopbooks.services.storage import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DataSourceError,
    FinancialDataSource,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDataSource,
    InMemoryAuditStorage,
    InMemoryDataSource,
    NotFoundError,
)

__all__ = [
    "AuditStorageInterface",
    "ConflictError",
    "ConnectionError",
    "DataSourceError",
    "FinancialDataSource",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDataSource",
    "InMemoryAuditStorage",
    "InMemoryDataSource",
    "NotFoundError",
]
