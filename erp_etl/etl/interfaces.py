"""
Collaborator contracts of the ETL core.

The core depends only on these shapes; WarehouseRepository implements all
three, tests use in-memory fakes.
"""

from datetime import date
from typing import Protocol, Sequence

from erp_etl.source.records import DimensionRecord, PaymentRow, SaleRow


class KeyResolver(Protocol):
    async def resolve_key(self, record: DimensionRecord) -> int:
        """Idempotent get-or-create of a surrogate key by natural key"""
        ...


class DateKeyResolver(Protocol):
    async def resolve_date_key(self, value: date) -> int:
        """YYYYMMDD key of the day, creating the date row when absent"""
        ...


class FactLoader(Protocol):
    async def insert_sales(self, rows: Sequence[SaleRow]) -> int:
        ...

    async def insert_payments(self, rows: Sequence[PaymentRow]) -> int:
        ...
