"""Row sources and write sinks for line performance data."""

from .sources import (
    CallableRowSource,
    DataSourceError,
    InMemoryStore,
    RecordFilter,
    RowSource,
    WriteSink,
)
from .workbook import WorkbookRowSource

__all__ = [
    "CallableRowSource",
    "DataSourceError",
    "InMemoryStore",
    "RecordFilter",
    "RowSource",
    "WorkbookRowSource",
    "WriteSink",
]
