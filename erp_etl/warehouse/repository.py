"""
Warehouse Repository

Server-side half of the ETL: get-or-create of dimension surrogate keys,
on-demand date rows and bulk fact inserts. Each dimension lookup is a single
INSERT ... ON CONFLICT (erp_ref) DO UPDATE ... RETURNING statement, so a
natural key always yields the same surrogate key no matter how often or
from how many runs it is submitted.
"""

from datetime import date
from typing import Any, Callable, Dict, Sequence, Set, Tuple, Type

import structlog
from sqlalchemy import func, insert
from sqlalchemy.dialects import postgresql, sqlite

from erp_etl.exceptions import MissingCustomerKeyError
from erp_etl.source.records import (
    ContractRecord,
    CustomerRecord,
    DimensionRecord,
    OrganizationRecord,
    PaymentRow,
    ProductRecord,
    SaleRow,
)
from erp_etl.warehouse.calendar import date_attributes, date_key_for
from erp_etl.warehouse.connection import get_db, get_engine
from erp_etl.warehouse.models import (
    DimContract,
    DimCustomer,
    DimDate,
    DimOrganization,
    DimProduct,
    FactPayment,
    FactSale,
)

logger = structlog.get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT support
_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


# =============================================================================
# ROW BUILDERS
# =============================================================================

def _organization_values(record: OrganizationRecord) -> Dict[str, Any]:
    return {
        "erp_ref": record.ref,
        "code": record.code,
        "name": record.name,
        "full_name": record.full_name,
    }


def _customer_values(record: CustomerRecord) -> Dict[str, Any]:
    return {
        "erp_ref": record.ref,
        "code": record.code,
        "name": record.name,
        "full_name": record.full_name,
        "tin": record.tin,
        "kpp": record.kpp,
        "entity_type": record.entity_type,
        "is_active": not record.is_deleted,
    }


def _product_values(record: ProductRecord) -> Dict[str, Any]:
    return {
        "erp_ref": record.ref,
        "code": record.code,
        "name": record.name,
        "full_name": record.full_name,
        "sku": record.sku,
        "unit_of_measure": record.unit_of_measure,
        "product_type": record.product_type,
        "product_group": record.product_group,
        "default_vat_rate": record.default_vat_rate,
    }


def _contract_values(record: ContractRecord) -> Dict[str, Any]:
    if not record.customer_key:
        raise MissingCustomerKeyError(record.ref)
    return {
        "erp_ref": record.ref,
        "code": record.code,
        "name": record.name,
        "customer_key": record.customer_key,
        "start_date": record.start_date,
        "end_date": record.end_date,
    }


def _sale_values(row: SaleRow) -> Dict[str, Any]:
    return {
        "document_id": row.document_id,
        "document_number": row.document_number,
        "line_no": row.line_no,
        "date_key": row.date_key,
        "customer_key": row.customer_key,
        "product_key": row.product_key,
        "organization_key": row.organization_key,
        "contract_key": row.contract_key,
        "quantity": row.quantity,
        "price": row.price,
        "amount": row.amount,
        "vat_rate_name": row.vat_rate_name,
        "vat_amount": row.vat_amount,
        "total_amount": row.total_amount,
        "currency_code": row.currency_code,
    }


def _payment_values(row: PaymentRow) -> Dict[str, Any]:
    return {
        "document_id": row.document_id,
        "document_number": row.document_number,
        "date_key": row.date_key,
        "customer_key": row.customer_key,
        "organization_key": row.organization_key,
        "contract_key": row.contract_key,
        "amount": row.amount,
        "currency_code": row.currency_code,
    }


# record type -> (table, surrogate key column name, row builder)
DIMENSION_TABLES: Dict[Type[DimensionRecord], Tuple[Any, str, Callable[[Any], Dict[str, Any]]]] = {
    OrganizationRecord: (DimOrganization, "organization_key", _organization_values),
    CustomerRecord: (DimCustomer, "customer_key", _customer_values),
    ProductRecord: (DimProduct, "product_key", _product_values),
    ContractRecord: (DimContract, "contract_key", _contract_values),
}


class WarehouseRepository:
    """
    Key resolution and fact loading against the star schema.

    Requires init_database() to have been called.

    Example:
        repo = WarehouseRepository()
        customer_key = await repo.resolve_key(customer_record)
        date_key = await repo.resolve_date_key(date(2024, 3, 1))
        await repo.insert_sales(rows)
    """

    def __init__(self):
        self._known_date_keys: Set[int] = set()

    @property
    def dialect(self) -> str:
        return get_engine().dialect.name

    def _insert(self, table):
        try:
            return _INSERT_BY_DIALECT[self.dialect](table)
        except KeyError:
            raise NotImplementedError(f"Upserts are not supported on dialect {self.dialect!r}") from None

    # -------------------------------------------------------------------------
    # Key Resolver
    # -------------------------------------------------------------------------

    async def resolve_key(self, record: DimensionRecord) -> int:
        """
        Get or create the surrogate key of a dimension record.

        Descriptive attributes of an existing row are refreshed from the record.

        Raises:
            MissingCustomerKeyError: Contract submitted without its customer key
        """
        try:
            table, key_name, build_values = DIMENSION_TABLES[type(record)]
        except KeyError:
            raise TypeError(f"No dimension table for {type(record).__name__}") from None

        values = build_values(record)
        stmt = self._insert(table).values(**values)
        refreshed = {name: stmt.excluded[name] for name in values if name != "erp_ref"}
        refreshed["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.erp_ref],
            set_=refreshed,
        ).returning(getattr(table, key_name))

        async with get_db() as db:
            result = await db.execute(stmt)
            key = result.scalar_one()

        logger.debug("Dimension key resolved", table=table.__tablename__, natural_key=str(record.ref), key=key)
        return key

    # -------------------------------------------------------------------------
    # Date Key Resolver
    # -------------------------------------------------------------------------

    async def resolve_date_key(self, value: date) -> int:
        """Return the YYYYMMDD key of a day, creating its DimDate row if absent."""
        date_key = date_key_for(value)
        if date_key in self._known_date_keys:
            return date_key

        stmt = self._insert(DimDate).values(**date_attributes(value)).on_conflict_do_nothing(
            index_elements=[DimDate.date_key]
        )
        async with get_db() as db:
            await db.execute(stmt)

        self._known_date_keys.add(date_key)
        return date_key

    # -------------------------------------------------------------------------
    # Fact Loader
    # -------------------------------------------------------------------------

    async def _bulk_insert(self, table, values: Sequence[Dict[str, Any]]) -> int:
        if not values:
            return 0
        # One transaction per batch: every row lands or none does
        async with get_db() as db:
            await db.execute(insert(table), list(values))
        logger.debug("Fact batch written", table=table.__tablename__, rows=len(values))
        return len(values)

    async def insert_sales(self, rows: Sequence[SaleRow]) -> int:
        """Bulk insert resolved sale lines. Returns the number of rows written."""
        return await self._bulk_insert(FactSale, [_sale_values(row) for row in rows])

    async def insert_payments(self, rows: Sequence[PaymentRow]) -> int:
        """Bulk insert resolved payments. Returns the number of rows written."""
        return await self._bulk_insert(FactPayment, [_payment_values(row) for row in rows])
