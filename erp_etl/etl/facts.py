"""
Fact streaming and key resolution.

Each fact row goes through the same pipeline:

1. business date -> date key
2. customer (sales) / payer (payments) -> customer key      [required]
3. product -> product key, sales only                         [required]
4. organization -> organization key                           [required]
5. contract -> contract key                                   [optional]

A row missing any required key is skipped and counted. An unknown contract
only clears the contract key. Rows that survive are batched for the loader.
"""

from datetime import date
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel

from erp_etl.source.records import EntityKind, FactRow, PaymentRow, SaleRow

from .batching import FactBatch
from .dimensions import DimensionMaps
from .interfaces import DateKeyResolver, FactLoader

logger = structlog.get_logger(__name__)

R = TypeVar("R", bound=FactRow)


class FactLoadStats(BaseModel):
    """Counters of one fact stream"""
    kind: str
    read: int = 0
    inserted: int = 0
    skipped: int = 0
    batches: int = 0


# =============================================================================
# LOOKUPS
# =============================================================================

def _required(keys: Dict[UUID, int], ref: UUID, row: FactRow, reference: str) -> Optional[int]:
    key = keys.get(ref)
    if key is None:
        logger.warning(
            "Unresolved reference, row skipped",
            reference=reference,
            natural_key=str(ref),
            **row.identity,
        )
    return key


def _optional_contract(contracts: Dict[UUID, int], row: FactRow) -> Optional[int]:
    if row.contract_ref is None:
        return None
    key = contracts.get(row.contract_ref)
    if key is None:
        logger.warning(
            "Unknown contract, loading row without contract",
            natural_key=str(row.contract_ref),
            **row.identity,
        )
    return key


async def _date_key(row: FactRow, business_date: date, dates: DateKeyResolver) -> Optional[int]:
    try:
        return await dates.resolve_date_key(business_date)
    except Exception as e:
        logger.error(
            "Date key resolution failed, row skipped",
            business_date=business_date.isoformat(),
            error=str(e),
            exc_info=True,
            **row.identity,
        )
        return None


async def resolve_sale(row: SaleRow, maps: DimensionMaps, dates: DateKeyResolver) -> bool:
    """Attach surrogate keys to a sale line. False means the row must be skipped."""
    row.date_key = await _date_key(row, row.business_date, dates)
    if row.date_key is None:
        return False

    row.customer_key = _required(maps.customers, row.customer_ref, row, "customer")
    if row.customer_key is None:
        return False

    row.product_key = _required(maps.products, row.product_ref, row, "product")
    if row.product_key is None:
        return False

    row.organization_key = _required(maps.organizations, row.organization_ref, row, "organization")
    if row.organization_key is None:
        return False

    row.contract_key = _optional_contract(maps.contracts, row)
    return True


async def resolve_payment(row: PaymentRow, maps: DimensionMaps, dates: DateKeyResolver) -> bool:
    """Attach surrogate keys to a payment. False means the row must be skipped."""
    row.date_key = await _date_key(row, row.business_date, dates)
    if row.date_key is None:
        return False

    row.customer_key = _required(maps.customers, row.payer_ref, row, "payer")
    if row.customer_key is None:
        return False

    row.organization_key = _required(maps.organizations, row.organization_ref, row, "organization")
    if row.organization_key is None:
        return False

    row.contract_key = _optional_contract(maps.contracts, row)
    return True


# =============================================================================
# STREAMING
# =============================================================================

async def _stream_facts(
    kind: EntityKind,
    rows: Iterable[R],
    resolve: Callable[[R], Awaitable[bool]],
    flush: Callable[[Sequence[R]], Awaitable[int]],
    batch_size: int,
) -> FactLoadStats:
    stats = FactLoadStats(kind=kind.value)
    batch: FactBatch[R] = FactBatch(kind.value, batch_size, flush)

    logger.info("Streaming facts", kind=kind.value, batch_size=batch_size)

    for row in rows:
        stats.read += 1
        try:
            resolved = await resolve(row)
        except Exception as e:
            logger.error(
                "Unexpected error resolving fact row, row skipped",
                kind=kind.value,
                error=str(e),
                exc_info=True,
                **row.identity,
            )
            resolved = False

        if not resolved:
            stats.skipped += 1
            continue

        # Loader failures are not per-row problems; they end the run
        await batch.add(row)

    await batch.flush()

    if stats.read == 0:
        logger.warning("Source returned no fact rows", kind=kind.value)

    stats.inserted = batch.inserted
    stats.batches = batch.batches
    logger.info(
        "Fact load finished",
        kind=kind.value,
        read=stats.read,
        inserted=stats.inserted,
        skipped=stats.skipped,
        batches=stats.batches,
    )
    return stats


async def load_sales(
    rows: Iterable[SaleRow],
    maps: DimensionMaps,
    dates: DateKeyResolver,
    loader: FactLoader,
    batch_size: int,
) -> FactLoadStats:
    """Resolve and bulk load sale lines."""
    return await _stream_facts(
        EntityKind.SALES,
        rows,
        lambda row: resolve_sale(row, maps, dates),
        loader.insert_sales,
        batch_size,
    )


async def load_payments(
    rows: Iterable[PaymentRow],
    maps: DimensionMaps,
    dates: DateKeyResolver,
    loader: FactLoader,
    batch_size: int,
) -> FactLoadStats:
    """Resolve and bulk load customer payments."""
    return await _stream_facts(
        EntityKind.PAYMENTS,
        rows,
        lambda row: resolve_payment(row, maps, dates),
        loader.insert_payments,
        batch_size,
    )
