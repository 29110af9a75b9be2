"""Storage layer - Database schemas, query helpers and repositories."""

from staking_indexer.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from staking_indexer.storage.models import (
    Base,
    EventRecordModel,
    ScanTaskModel,
    UserLedgerModel,
)
from staking_indexer.storage.query import (
    Operator,
    OrderBy,
    PersistenceError,
    Predicate,
    QueryStore,
)
from staking_indexer.storage.repos import (
    EventRecordDTO,
    EventRecordRepository,
    ScanTaskDTO,
    ScanTaskRepository,
    UserLedgerDTO,
    UserLedgerRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "EventRecordDTO",
    "EventRecordModel",
    "EventRecordRepository",
    "Operator",
    "OrderBy",
    "PersistenceError",
    "Predicate",
    "QueryStore",
    "ScanTaskDTO",
    "ScanTaskModel",
    "ScanTaskRepository",
    "UserLedgerDTO",
    "UserLedgerModel",
    "UserLedgerRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
