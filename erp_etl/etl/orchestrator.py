"""
ETL Orchestrator

Runs one full extraction: connect -> dimensions -> sales -> payments ->
release. Per-record and per-row problems are absorbed by the dimension and
fact phases; anything else ends the run, is logged as critical and reported
in the RunResult. run() never raises for a failed run, and the source
session is released exactly once on every path.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Dict, Optional

import structlog
from pydantic import BaseModel, Field

from erp_etl.source.base import SourceReader

from .batching import resolve_batch_size
from .dimensions import load_dimensions
from .facts import FactLoadStats, load_payments, load_sales
from .interfaces import DateKeyResolver, FactLoader, KeyResolver

logger = structlog.get_logger(__name__)


class RunStatus(str, Enum):
    """Outcome of an ETL run"""
    SUCCEEDED = "succeeded"
    CONNECTION_FAILED = "connection_failed"
    FAILED = "failed"


class RunResult(BaseModel):
    """Summary of an ETL run"""
    run_id: str
    status: RunStatus = RunStatus.FAILED
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0
    dimensions: Dict[str, int] = Field(default_factory=dict)
    sales: Optional[FactLoadStats] = None
    payments: Optional[FactLoadStats] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCEEDED


class EtlOrchestrator:
    """
    ERP to warehouse run coordinator.

    Example:
        repo = WarehouseRepository()
        orchestrator = EtlOrchestrator(reader, resolver=repo, dates=repo, loader=repo, batch_size=500)
        result = await orchestrator.run()
    """

    def __init__(
        self,
        source: SourceReader,
        resolver: KeyResolver,
        dates: DateKeyResolver,
        loader: FactLoader,
        batch_size: Optional[int] = None,
    ):
        self.source = source
        self.resolver = resolver
        self.dates = dates
        self.loader = loader
        self.batch_size = resolve_batch_size(batch_size)

    def _release_source(self) -> None:
        try:
            self.source.release()
            logger.info("ERP session released", source=self.source.name)
        except Exception as e:
            logger.error("Failed to release ERP session", source=self.source.name, error=str(e), exc_info=True)

    @asynccontextmanager
    async def source_session(self) -> AsyncIterator[bool]:
        """Connect the source for the duration of the block; yields whether it connected."""
        try:
            yield self.source.connect()
        finally:
            self._release_source()

    async def _run_phases(self, result: RunResult) -> None:
        maps = await load_dimensions(self.source, self.resolver)
        result.dimensions = maps.counts()

        result.sales = await load_sales(
            self.source.sale_rows(), maps, self.dates, self.loader, self.batch_size
        )
        result.payments = await load_payments(
            self.source.payment_rows(), maps, self.dates, self.loader, self.batch_size
        )

    async def run(self) -> RunResult:
        """
        Execute a full run.

        Returns:
            RunResult: Status, dimension counts and fact counters of the run
        """
        run_id = uuid.uuid4().hex[:12]
        result = RunResult(run_id=run_id, started_at=datetime.utcnow())

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            logger.info("ETL run started", source=self.source.name, batch_size=self.batch_size)
            try:
                async with self.source_session() as connected:
                    if not connected:
                        logger.critical("Could not connect to the ERP, run aborted", source=self.source.name)
                        result.status = RunStatus.CONNECTION_FAILED
                    else:
                        await self._run_phases(result)
                        result.status = RunStatus.SUCCEEDED
            except Exception as e:
                logger.critical("ETL run failed", error=str(e), error_type=type(e).__name__, exc_info=True)
                result.status = RunStatus.FAILED
                result.error_message = str(e)

            result.completed_at = datetime.utcnow()
            result.duration_seconds = (result.completed_at - result.started_at).total_seconds()
            logger.info(
                "ETL run finished",
                status=result.status.value,
                duration_seconds=result.duration_seconds,
                dimensions=result.dimensions,
                sales_inserted=result.sales.inserted if result.sales else 0,
                payments_inserted=result.payments.inserted if result.payments else 0,
            )

        return result
