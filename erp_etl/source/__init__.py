"""
ERP source layer: typed records and the readers that produce them.
"""

from erp_etl.config.settings import SourceSettings

from .base import SourceReader
from .com_reader import ComSourceReader
from .decoding import decode_rows
from .mock_reader import MockSourceReader, build_reference_dataset
from .records import (
    ContractRecord,
    CustomerRecord,
    DimensionRecord,
    EntityKind,
    FactRow,
    OrganizationRecord,
    PaymentRow,
    ProductRecord,
    SaleRow,
    SourceRecord,
)


def create_source_reader(settings: SourceSettings) -> SourceReader:
    """Build the reader selected by SOURCE_BACKEND"""
    if settings.backend == "mock":
        return MockSourceReader(seed=settings.mock_seed)
    return ComSourceReader(
        prog_id=settings.com_prog_id,
        connection_string=settings.connection_string,
    )


__all__ = [
    "SourceReader",
    "ComSourceReader",
    "MockSourceReader",
    "build_reference_dataset",
    "create_source_reader",
    "decode_rows",
    "EntityKind",
    "SourceRecord",
    "DimensionRecord",
    "OrganizationRecord",
    "CustomerRecord",
    "ProductRecord",
    "ContractRecord",
    "FactRow",
    "SaleRow",
    "PaymentRow",
]
