"""
Test Suite Configuration
"""
from datetime import date
from typing import AsyncGenerator, Dict, Iterable, List, Tuple
from uuid import UUID

import pytest
import pytest_asyncio

from erp_etl.config import Settings, get_settings
from erp_etl.exceptions import MissingCustomerKeyError
from erp_etl.source.mock_reader import MockSourceReader, build_reference_dataset
from erp_etl.source.records import ContractRecord, DimensionRecord, EntityKind, PaymentRow, SaleRow
from erp_etl.warehouse.calendar import date_key_for
from erp_etl.warehouse.connection import close_database, create_schema, init_database
from erp_etl.warehouse.repository import WarehouseRepository

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class FakeWarehouse:
    """In-memory key resolver, date key resolver and fact loader"""

    def __init__(
        self,
        fail_refs: Iterable[UUID] = (),
        fail_dates: Iterable[date] = (),
        fail_on_flush: bool = False,
    ):
        self.fail_refs = set(fail_refs)
        self.fail_dates = set(fail_dates)
        self.fail_on_flush = fail_on_flush

        self.keys: Dict[Tuple[str, UUID], int] = {}
        self.resolve_calls: List[DimensionRecord] = []
        self.date_keys = set()
        self.sale_batches: List[List[SaleRow]] = []
        self.payment_batches: List[List[PaymentRow]] = []

    async def resolve_key(self, record: DimensionRecord) -> int:
        self.resolve_calls.append(record)
        if record.ref in self.fail_refs:
            raise RuntimeError(f"cannot store {record.ref}")
        if isinstance(record, ContractRecord) and not record.customer_key:
            raise MissingCustomerKeyError(record.ref)
        identity = (type(record).__name__, record.ref)
        if identity not in self.keys:
            self.keys[identity] = len(self.keys) + 1
        return self.keys[identity]

    async def resolve_date_key(self, value: date) -> int:
        if value in self.fail_dates:
            raise RuntimeError(f"cannot store {value}")
        key = date_key_for(value)
        self.date_keys.add(key)
        return key

    async def insert_sales(self, rows) -> int:
        if self.fail_on_flush:
            raise RuntimeError("warehouse unavailable")
        self.sale_batches.append(list(rows))
        return len(rows)

    async def insert_payments(self, rows) -> int:
        if self.fail_on_flush:
            raise RuntimeError("warehouse unavailable")
        self.payment_batches.append(list(rows))
        return len(rows)

    @property
    def sales(self) -> List[SaleRow]:
        return [row for batch in self.sale_batches for row in batch]

    @property
    def payments(self) -> List[PaymentRow]:
        return [row for batch in self.payment_batches for row in batch]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that touch env need a fresh load"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing")


@pytest.fixture
def reference_data() -> Dict[EntityKind, List[dict]]:
    """Raw rows of the mock ERP"""
    return build_reference_dataset(seed=42)


@pytest.fixture
def mock_source() -> MockSourceReader:
    return MockSourceReader(seed=42)


@pytest.fixture
def fake_warehouse() -> FakeWarehouse:
    return FakeWarehouse()


@pytest.fixture
def make_warehouse():
    """Factory for fake warehouses with injected failures"""
    return FakeWarehouse


@pytest_asyncio.fixture
async def warehouse() -> AsyncGenerator[WarehouseRepository, None]:
    """Repository over a fresh in-memory SQLite warehouse"""
    await init_database(url=SQLITE_MEMORY_URL)
    await create_schema()
    try:
        yield WarehouseRepository()
    finally:
        await close_database()
