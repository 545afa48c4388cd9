"""
Source Records

Typed record models for everything the ERP source yields. The source
readers validate raw query rows into these models, so the ETL core only
ever sees decoded values: UUID natural keys, dates, Decimal measures.

Dimension records:
- OrganizationRecord, CustomerRecord, ProductRecord, ContractRecord

Fact rows (mutated in place by the core once their keys resolve):
- SaleRow, PaymentRow
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


EMPTY_UUID = UUID(int=0)


class EntityKind(str, Enum):
    """Entity kinds the source can be asked for"""
    ORGANIZATIONS = "organizations"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    CONTRACTS = "contracts"
    SALES = "sales"
    PAYMENTS = "payments"


def _optional_ref(value: Any) -> Any:
    """Blank strings and the all-zero UUID mean "no reference" in the ERP"""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        if UUID(str(value)) == EMPTY_UUID:
            return None
    except ValueError:
        pass
    return value


def _to_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    return value


class SourceRecord(BaseModel):
    """Common configuration for every decoded source record"""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    @property
    def identity(self) -> Dict[str, Any]:
        """Identifying fields used as log context"""
        raise NotImplementedError


# =============================================================================
# DIMENSIONS
# =============================================================================

class DimensionRecord(SourceRecord):
    """A reference entity identified by its ERP natural key"""

    ref: UUID
    code: Optional[str] = None
    name: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _blank_name(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("ref")
    @classmethod
    def _non_empty_ref(cls, v: UUID) -> UUID:
        if v == EMPTY_UUID:
            raise ValueError("natural key must not be the empty UUID")
        return v

    @property
    def identity(self) -> Dict[str, Any]:
        return {"ref": str(self.ref), "name": self.name}


class OrganizationRecord(DimensionRecord):
    """Legal entity that owns sales and payments"""

    full_name: Optional[str] = None


class CustomerRecord(DimensionRecord):
    """Counterparty: buyer of sales and payer of payments"""

    full_name: Optional[str] = None
    tin: Optional[str] = None
    kpp: Optional[str] = None
    entity_type: Optional[str] = None
    is_deleted: bool = False

    @field_validator("is_deleted", mode="before")
    @classmethod
    def _deleted_flag(cls, v: Any) -> Any:
        return False if v is None else v


class ProductRecord(DimensionRecord):
    """Catalog item (goods or service)"""

    full_name: Optional[str] = None
    sku: Optional[str] = None
    unit_of_measure: Optional[str] = None
    product_type: Optional[str] = None
    product_group: Optional[str] = None
    default_vat_rate: Optional[str] = None


class ContractRecord(DimensionRecord):
    """Customer contract; references its owning customer by natural key"""

    customer_ref: UUID
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    # Attached by the dimension loader before persistence
    customer_key: Optional[int] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _contract_dates(cls, v: Any) -> Any:
        return _to_date(v)

    @property
    def identity(self) -> Dict[str, Any]:
        return {"ref": str(self.ref), "name": self.name, "customer_ref": str(self.customer_ref)}


# =============================================================================
# FACTS
# =============================================================================

class FactRow(SourceRecord):
    """A measured business event referencing dimensions by natural key"""

    document_id: UUID
    document_number: str = ""
    organization_ref: UUID
    contract_ref: Optional[UUID] = None
    currency_code: Optional[str] = None

    # Resolved by the fact pipeline
    date_key: Optional[int] = None
    customer_key: Optional[int] = None
    organization_key: Optional[int] = None
    contract_key: Optional[int] = None

    @field_validator("document_number", mode="before")
    @classmethod
    def _blank_number(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("contract_ref", mode="before")
    @classmethod
    def _optional_contract(cls, v: Any) -> Any:
        return _optional_ref(v)


class SaleRow(FactRow):
    """One line of a posted sales document"""

    line_no: int = 0
    doc_date: date
    customer_ref: UUID
    product_ref: UUID
    quantity: Decimal = Decimal(0)
    price: Decimal = Decimal(0)
    amount: Decimal = Decimal(0)
    vat_rate_name: Optional[str] = None
    vat_amount: Decimal = Decimal(0)
    total_amount: Decimal = Decimal(0)

    product_key: Optional[int] = None

    @field_validator("doc_date", mode="before")
    @classmethod
    def _doc_date(cls, v: Any) -> Any:
        return _to_date(v)

    @field_validator("line_no", "quantity", "price", "amount", "vat_amount", "total_amount", mode="before")
    @classmethod
    def _zero_if_missing(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def business_date(self) -> date:
        return self.doc_date

    @property
    def identity(self) -> Dict[str, Any]:
        return {
            "doc_id": str(self.document_id),
            "doc_number": self.document_number,
            "line_no": self.line_no,
        }


class PaymentRow(FactRow):
    """Incoming customer payment"""

    payment_date: date
    payer_ref: UUID
    amount: Decimal = Decimal(0)

    @field_validator("payment_date", mode="before")
    @classmethod
    def _payment_date(cls, v: Any) -> Any:
        return _to_date(v)

    @field_validator("amount", mode="before")
    @classmethod
    def _zero_if_missing(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def business_date(self) -> date:
        return self.payment_date

    @property
    def identity(self) -> Dict[str, Any]:
        return {
            "doc_id": str(self.document_id),
            "doc_number": self.document_number,
        }


RECORD_TYPES = {
    EntityKind.ORGANIZATIONS: OrganizationRecord,
    EntityKind.CUSTOMERS: CustomerRecord,
    EntityKind.PRODUCTS: ProductRecord,
    EntityKind.CONTRACTS: ContractRecord,
    EntityKind.SALES: SaleRow,
    EntityKind.PAYMENTS: PaymentRow,
}
