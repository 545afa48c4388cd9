"""
ETL orchestration core: dimension key maps, fact resolution and batching.
"""

from .batching import FactBatch, resolve_batch_size
from .dimensions import DIMENSION_ORDER, DimensionMaps, load_dimensions
from .facts import FactLoadStats, load_payments, load_sales, resolve_payment, resolve_sale
from .interfaces import DateKeyResolver, FactLoader, KeyResolver
from .orchestrator import EtlOrchestrator, RunResult, RunStatus

__all__ = [
    "EtlOrchestrator",
    "RunResult",
    "RunStatus",
    "DimensionMaps",
    "DIMENSION_ORDER",
    "load_dimensions",
    "FactLoadStats",
    "load_sales",
    "load_payments",
    "resolve_sale",
    "resolve_payment",
    "FactBatch",
    "resolve_batch_size",
    "KeyResolver",
    "DateKeyResolver",
    "FactLoader",
]
