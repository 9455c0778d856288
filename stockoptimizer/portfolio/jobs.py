"""Background optimization runs and the scheduled recommendation refresh.

An optimization is acknowledged immediately and runs as an asyncio task;
callers observe completion through the portfolio's optimization status.
Only one run per portfolio is accepted while its status is OPTIMIZING.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from stockoptimizer.core.exceptions import OptimizationInProgressError
from stockoptimizer.core.logging import LoggerAdapter, get_logger
from stockoptimizer.domain.portfolio import OptimizationStatus, Portfolio
from stockoptimizer.quant_engine.scoring import validate_risk_tolerance
from stockoptimizer.quant_engine.types import AllocationStrategy

from .service import PortfolioEngine

logger = get_logger("portfolio.jobs")


class OptimizationJob(BaseModel):
    """Acknowledgement of a submitted optimization run."""

    job_id: str
    portfolio_id: str
    status: OptimizationStatus
    risk_tolerance: float
    strategy: AllocationStrategy
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OptimizationState(BaseModel):
    """Polled view of a portfolio's optimization lifecycle."""

    portfolio_id: str
    status: OptimizationStatus
    last_optimized_at: Optional[datetime] = None
    running: bool = False


class OptimizationRunner:
    """Schedules ``PortfolioEngine.run_optimization`` as background tasks."""

    def __init__(self, engine: PortfolioEngine):
        self.engine = engine
        self._tasks: dict[str, asyncio.Task] = {}

    async def start(
        self,
        portfolio_id: str,
        risk_tolerance: float,
        strategy: AllocationStrategy = AllocationStrategy.MEAN_VARIANCE,
    ) -> OptimizationJob:
        """
        Mark the portfolio OPTIMIZING and schedule the run.

        Raises:
            OptimizationInProgressError: A run is already active.
            NotFoundError: Unknown portfolio.
        """
        risk_tolerance = validate_risk_tolerance(risk_tolerance)
        portfolio = await self.engine.portfolios.load_portfolio(portfolio_id)
        if portfolio.optimization_status == OptimizationStatus.OPTIMIZING:
            raise OptimizationInProgressError(
                f"Portfolio {portfolio_id} is already being optimized",
                details={"portfolio_id": portfolio_id},
            )

        await self.engine.portfolios.persist_portfolio(
            portfolio.with_status(OptimizationStatus.OPTIMIZING)
        )

        job = OptimizationJob(
            job_id=uuid.uuid4().hex,
            portfolio_id=portfolio_id,
            status=OptimizationStatus.OPTIMIZING,
            risk_tolerance=risk_tolerance,
            strategy=strategy,
        )
        task = asyncio.create_task(
            self.engine.run_optimization(portfolio_id, risk_tolerance, strategy, claim=False),
            name=f"optimize:{portfolio_id}:{job.job_id}",
        )
        task.add_done_callback(self._log_outcome)
        self._tasks[portfolio_id] = task

        LoggerAdapter(logger, {"portfolio_id": portfolio_id, "job_id": job.job_id}).info(
            f"Optimization job {job.job_id} started ({strategy.value}, rt={risk_tolerance:.2f})"
        )
        return job

    def _log_outcome(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning(f"Task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Task {task.get_name()} failed: {error}")
        else:
            logger.info(f"Task {task.get_name()} finished")

    def is_running(self, portfolio_id: str) -> bool:
        task = self._tasks.get(portfolio_id)
        return task is not None and not task.done()

    async def status(self, portfolio_id: str) -> OptimizationState:
        portfolio = await self.engine.portfolios.load_portfolio(portfolio_id)
        return OptimizationState(
            portfolio_id=portfolio_id,
            status=portfolio.optimization_status,
            last_optimized_at=portfolio.last_optimized_at,
            running=self.is_running(portfolio_id),
        )

    async def wait(self, portfolio_id: str) -> Optional[Portfolio]:
        """Await the latest run of a portfolio; re-raises its failure."""
        task = self._tasks.get(portfolio_id)
        if task is None:
            return None
        return await task

    async def shutdown(self) -> None:
        """Wait for outstanding runs; their failures are already logged."""
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            logger.info(f"Waiting for {len(pending)} optimization runs")
            await asyncio.gather(*pending, return_exceptions=True)


async def refresh_all_recommendations(
    engine: PortfolioEngine,
    portfolio_ids: Optional[Iterable[str]] = None,
    risk_tolerance: float = 0.5,
    expand_universe: bool = False,
) -> dict[str, int]:
    """
    Recompute cached recommendations portfolio by portfolio.

    A failing portfolio is logged and counted; the batch always completes.

    Returns:
        Counts of refreshed and failed portfolios.
    """
    if portfolio_ids is None:
        portfolio_ids = await engine.portfolios.list_portfolio_ids()

    refreshed = 0
    failed = 0
    for portfolio_id in portfolio_ids:
        try:
            await engine.invalidate_recommendations(portfolio_id)
            await engine.generate_recommendations(portfolio_id, risk_tolerance, expand_universe)
            refreshed += 1
        except Exception as e:
            failed += 1
            logger.warning(f"Recommendation refresh failed for portfolio {portfolio_id}: {e}")

    logger.info(f"Recommendation refresh finished: {refreshed} refreshed, {failed} failed")
    return {"refreshed": refreshed, "failed": failed}
