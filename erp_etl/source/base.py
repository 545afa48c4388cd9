"""
Source Reader interface.

A source reader owns exactly one session with the ERP for the duration of a
run. It is connected once, asked for each entity kind in turn and released
once at the end. Every fetch re-executes the full query for that kind.
"""

from abc import ABC, abstractmethod
from typing import Iterator

from .records import (
    ContractRecord,
    CustomerRecord,
    EntityKind,
    OrganizationRecord,
    PaymentRow,
    ProductRecord,
    SaleRow,
    SourceRecord,
)


class SourceReader(ABC):
    """Produces typed records for each entity kind of the ERP"""

    name: str = "source"

    @abstractmethod
    def connect(self) -> bool:
        """Open the session. Returns False (never raises) when it cannot."""

    @abstractmethod
    def fetch(self, kind: EntityKind) -> Iterator[SourceRecord]:
        """
        Lazily yield every record of the given kind.

        Malformed rows are dropped by the reader. Failure to run the query
        at all raises SourceQueryError.
        """

    @abstractmethod
    def release(self) -> None:
        """Release the session. Safe to call when connect() failed."""

    # Typed conveniences over fetch()

    def organizations(self) -> Iterator[OrganizationRecord]:
        return self.fetch(EntityKind.ORGANIZATIONS)

    def customers(self) -> Iterator[CustomerRecord]:
        return self.fetch(EntityKind.CUSTOMERS)

    def products(self) -> Iterator[ProductRecord]:
        return self.fetch(EntityKind.PRODUCTS)

    def contracts(self) -> Iterator[ContractRecord]:
        return self.fetch(EntityKind.CONTRACTS)

    def sale_rows(self) -> Iterator[SaleRow]:
        return self.fetch(EntityKind.SALES)

    def payment_rows(self) -> Iterator[PaymentRow]:
        return self.fetch(EntityKind.PAYMENTS)
