"""
Warehouse Models - Star Schema Design

Analytical store for the ERP data. Every dimension carries an integer
surrogate key and the ERP natural key (UUID) as a unique column; facts
reference dimensions by surrogate key only.

Fact Tables:
- FactSale: Lines of posted sales documents
- FactPayment: Incoming customer payments

Dimension Tables:
- DimDate: Calendar dimension keyed by YYYYMMDD
- DimOrganization: Legal entities of the company
- DimCustomer: Counterparties
- DimProduct: Catalog items
- DimContract: Customer contracts
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
import uuid

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all warehouse models"""
    pass


class AuditMixin:
    """Load timestamps maintained by the warehouse"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """
    Date Dimension Table

    Filled on demand: a row is created the first time a fact references
    the day.
    """
    __tablename__ = "dim_date"

    date_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)  # YYYYMMDD
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 1=Monday
    day_name: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    week_of_year: Mapped[int] = mapped_column(Integer, nullable=False)  # ISO week
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    month_name: Mapped[str] = mapped_column(String(20), nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_dim_date_year_month", "year", "month"),
    )


class DimOrganization(AuditMixin, Base):
    """Organization Dimension Table"""
    __tablename__ = "dim_organizations"

    organization_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    erp_ref: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)

    code: Mapped[Optional[str]] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(500))


class DimCustomer(AuditMixin, Base):
    """
    Customer Dimension Table

    Counterparties of the ERP. Deleted-marked counterparties are kept and
    flagged inactive so historical facts stay joinable.
    """
    __tablename__ = "dim_customers"

    customer_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    erp_ref: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)

    code: Mapped[Optional[str]] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(500))

    # Registration
    tin: Mapped[Optional[str]] = mapped_column(String(12))
    kpp: Mapped[Optional[str]] = mapped_column(String(9))
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    contracts: Mapped[List["DimContract"]] = relationship(back_populates="customer")

    __table_args__ = (
        Index("ix_dim_customers_tin", "tin"),
    )


class DimProduct(AuditMixin, Base):
    """Product Dimension Table"""
    __tablename__ = "dim_products"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    erp_ref: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)

    code: Mapped[Optional[str]] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(500))
    sku: Mapped[Optional[str]] = mapped_column(String(50))
    unit_of_measure: Mapped[Optional[str]] = mapped_column(String(50))

    # Classification
    product_type: Mapped[Optional[str]] = mapped_column(String(100))
    product_group: Mapped[Optional[str]] = mapped_column(String(150))
    default_vat_rate: Mapped[Optional[str]] = mapped_column(String(20))

    __table_args__ = (
        Index("ix_dim_products_sku", "sku"),
        Index("ix_dim_products_group", "product_group"),
    )


class DimContract(AuditMixin, Base):
    """Contract Dimension Table"""
    __tablename__ = "dim_contracts"

    contract_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    erp_ref: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)

    code: Mapped[Optional[str]] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    customer_key: Mapped[int] = mapped_column(
        ForeignKey("dim_customers.customer_key"), nullable=False
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)

    # Relationships
    customer: Mapped["DimCustomer"] = relationship(back_populates="contracts")

    __table_args__ = (
        Index("ix_dim_contracts_customer", "customer_key"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSale(Base):
    """
    Sales Fact Table

    Grain: one line of a posted sales document.
    """
    __tablename__ = "fact_sales"

    sale_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Source document
    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    # Dimension keys
    date_key: Mapped[int] = mapped_column(ForeignKey("dim_date.date_key"), nullable=False)
    customer_key: Mapped[int] = mapped_column(ForeignKey("dim_customers.customer_key"), nullable=False)
    product_key: Mapped[int] = mapped_column(ForeignKey("dim_products.product_key"), nullable=False)
    organization_key: Mapped[int] = mapped_column(
        ForeignKey("dim_organizations.organization_key"), nullable=False
    )
    contract_key: Mapped[Optional[int]] = mapped_column(ForeignKey("dim_contracts.contract_key"))

    # Measures
    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 3), default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    vat_rate_name: Mapped[Optional[str]] = mapped_column(String(20))
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    currency_code: Mapped[Optional[str]] = mapped_column(String(3))

    loaded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_fact_sales_document", "document_id", "line_no"),
        Index("ix_fact_sales_date", "date_key"),
        Index("ix_fact_sales_customer_date", "customer_key", "date_key"),
        Index("ix_fact_sales_product_date", "product_key", "date_key"),
    )


class FactPayment(Base):
    """
    Payments Fact Table

    Grain: one incoming payment document. The contract is optional.
    """
    __tablename__ = "fact_payments"

    payment_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)

    date_key: Mapped[int] = mapped_column(ForeignKey("dim_date.date_key"), nullable=False)
    customer_key: Mapped[int] = mapped_column(ForeignKey("dim_customers.customer_key"), nullable=False)
    organization_key: Mapped[int] = mapped_column(
        ForeignKey("dim_organizations.organization_key"), nullable=False
    )
    contract_key: Mapped[Optional[int]] = mapped_column(ForeignKey("dim_contracts.contract_key"))

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=0)
    currency_code: Mapped[Optional[str]] = mapped_column(String(3))

    loaded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_fact_payments_document", "document_id"),
        Index("ix_fact_payments_customer_date", "customer_key", "date_key"),
    )
