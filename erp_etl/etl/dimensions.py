"""
Dimension loading phase.

Builds the natural-key -> surrogate-key maps for the run. Kinds are loaded
strictly in the order Organization, Customer, Product, Contract: contracts
need the customer map to attach their owner's surrogate key.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional
from uuid import UUID

import structlog

from erp_etl.source.base import SourceReader
from erp_etl.source.records import ContractRecord, DimensionRecord, EntityKind

from .interfaces import KeyResolver

logger = structlog.get_logger(__name__)

DIMENSION_ORDER = (
    EntityKind.ORGANIZATIONS,
    EntityKind.CUSTOMERS,
    EntityKind.PRODUCTS,
    EntityKind.CONTRACTS,
)


@dataclass
class DimensionMaps:
    """Natural key -> surrogate key per dimension; read-only once loaded"""
    organizations: Dict[UUID, int] = field(default_factory=dict)
    customers: Dict[UUID, int] = field(default_factory=dict)
    products: Dict[UUID, int] = field(default_factory=dict)
    contracts: Dict[UUID, int] = field(default_factory=dict)

    def for_kind(self, kind: EntityKind) -> Dict[UUID, int]:
        return getattr(self, kind.value)

    def counts(self) -> Dict[str, int]:
        return {kind.value: len(self.for_kind(kind)) for kind in DIMENSION_ORDER}


def _attach_customer(record: ContractRecord, customers: Dict[UUID, int]) -> bool:
    customer_key = customers.get(record.customer_ref)
    if customer_key is None:
        logger.warning(
            "Contract references unknown customer, skipped",
            **record.identity,
        )
        return False
    record.customer_key = customer_key
    return True


async def _load_kind(
    kind: EntityKind,
    records: Iterable[DimensionRecord],
    resolver: KeyResolver,
    target: Dict[UUID, int],
    customers: Optional[Dict[UUID, int]] = None,
) -> None:
    records = list(records)
    if not records:
        logger.warning("Source returned no records", kind=kind.value)
        return

    for record in records:
        if isinstance(record, ContractRecord) and not _attach_customer(record, customers or {}):
            continue
        try:
            target[record.ref] = await resolver.resolve_key(record)
        except Exception as e:
            logger.error(
                "Failed to resolve dimension key",
                kind=kind.value,
                error=str(e),
                exc_info=True,
                **record.identity,
            )

    logger.info("Dimension loaded", kind=kind.value, loaded=len(target), seen=len(records))


async def load_dimensions(source: SourceReader, resolver: KeyResolver) -> DimensionMaps:
    """
    Resolve every dimension record of the source into in-memory key maps.

    A record that fails to resolve is logged and left out of its map;
    loading always continues with the next record.

    Args:
        source: Connected source reader
        resolver: Get-or-create key resolver

    Returns:
        DimensionMaps for the run
    """
    maps = DimensionMaps()
    for kind in DIMENSION_ORDER:
        logger.info("Loading dimension", kind=kind.value)
        await _load_kind(
            kind,
            source.fetch(kind),
            resolver,
            maps.for_kind(kind),
            customers=maps.customers,
        )
    return maps
