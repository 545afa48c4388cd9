"""
Warehouse layer: star schema models, connection lifecycle and the repository
that resolves keys and loads facts.
"""

from .calendar import date_attributes, date_key_for
from .connection import (
    check_database_health,
    close_database,
    create_schema,
    get_db,
    get_engine,
    get_session_factory,
    init_database,
)
from .models import (
    Base,
    DimContract,
    DimCustomer,
    DimDate,
    DimOrganization,
    DimProduct,
    FactPayment,
    FactSale,
)
from .repository import WarehouseRepository

__all__ = [
    "Base",
    "DimDate",
    "DimOrganization",
    "DimCustomer",
    "DimProduct",
    "DimContract",
    "FactSale",
    "FactPayment",
    "init_database",
    "close_database",
    "create_schema",
    "get_db",
    "get_engine",
    "get_session_factory",
    "check_database_health",
    "WarehouseRepository",
    "date_key_for",
    "date_attributes",
]
