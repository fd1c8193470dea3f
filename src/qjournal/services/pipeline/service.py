"""Trade processing pipeline service.

Runs the six stages of STAGES as a linear task graph: every stage is its own
asyncio task that awaits the task of the stage before it. Starting a run never
blocks on computation; execution is strictly ordered.
"""

import asyncio
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable

from qjournal.services.journal.models import Trade
from qjournal.services.pipeline.executor import InlineExecutor, TradeBatchExecutor
from qjournal.services.pipeline.models import (
    PipelineRequest,
    PipelineResult,
    PipelineStageError,
    PipelineSupersededError,
    ProcessingStage,
    StageStatus,
)
from qjournal.services.pipeline.stages import (
    ACCOUNTING_EXPANSION,
    CUMULATIVE_PERFORMANCE,
    FILTERING,
    PORTFOLIO_SIZING,
    SORTING,
    STAGES,
    TRADE_NORMALIZATION,
    apply_cumulative_impact,
    compute_portfolio_sizes,
    expand_for_accounting,
    filter_trades,
    normalize_batch,
    sort_trades,
)
from qjournal.system.config import AnalyticsConfig, get_system_config
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()

StageStep = Callable[[Any], Awaitable[Any]]
ProgressCallback = Callable[[PipelineResult], None]


class TradePipeline:
    """
    Staged processing pipeline for a trade journal.

    A run that fails keeps the failing stage in `error`, leaves downstream
    stages `pending` and returns no trades. Starting a new run supersedes any
    run still in flight: its remaining stages never start and its result is
    marked superseded.

    Attributes:
        config: Analytics settings (worker threshold)

    Example:
        >>> pipeline = TradePipeline(executor=WorkerExecutor())
        >>> result = await pipeline.run(PipelineRequest(trades=trades, cash_basis=True))
        >>> result.progress
        100.0
    """

    def __init__(
        self,
        executor: TradeBatchExecutor | None = None,
        config: AnalyticsConfig | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            executor: Executor for batches larger than config.worker_threshold;
                smaller batches are normalized inline
            config: Analytics settings; system configuration when omitted
            on_progress: Called with the run result on every stage transition
        """
        self.config = config if config is not None else get_system_config().analytics
        self._inline = InlineExecutor()
        self._executor = executor if executor is not None else self._inline
        self._on_progress = on_progress
        self._run_id = 0

    @property
    def current_run_id(self) -> int:
        return self._run_id

    def _select_executor(self, batch_size: int) -> TradeBatchExecutor:
        if batch_size > self.config.worker_threshold:
            return self._executor
        return self._inline

    def _publish(self, result: PipelineResult) -> None:
        completed = sum(1 for stage in result.stages if stage.status == StageStatus.COMPLETED)
        result.progress = completed / len(result.stages) * 100 if result.stages else 0.0
        if self._on_progress is not None:
            self._on_progress(result)

    def _build_steps(self, request: PipelineRequest) -> dict[str, StageStep]:
        resolver = request.build_resolver()
        executor = self._select_executor(len(request.trades))
        default_size = resolver.default_size if request.resolver is not None else request.default_portfolio_size

        async def size_portfolio(_: Any) -> dict[str, Decimal | None]:
            return compute_portfolio_sizes(request.trades, resolver)

        async def normalize(portfolio_sizes: dict[str, Decimal | None]) -> list[Trade]:
            return await normalize_batch(
                request.trades, portfolio_sizes, executor, default_size, request.reference_date
            )

        async def expand(trades: list[Trade]) -> list[Trade]:
            return expand_for_accounting(trades, request.cash_basis)

        async def filter_view(trades: list[Trade]) -> list[Trade]:
            return filter_trades(trades, request.cash_basis, request.date_range, request.search, request.status)

        async def sort_view(trades: list[Trade]) -> list[Trade]:
            return sort_trades(trades, request.sort)

        async def accumulate(trades: list[Trade]) -> list[Trade]:
            return apply_cumulative_impact(trades, request.cash_basis)

        return {
            PORTFOLIO_SIZING: size_portfolio,
            TRADE_NORMALIZATION: normalize,
            ACCOUNTING_EXPANSION: expand,
            FILTERING: filter_view,
            SORTING: sort_view,
            CUMULATIVE_PERFORMANCE: accumulate,
        }

    async def _run_stage(
        self,
        run_id: int,
        result: PipelineResult,
        stage: ProcessingStage,
        step: StageStep,
        dependency: "asyncio.Task[Any] | None",
    ) -> Any:
        data = await dependency if dependency is not None else None
        if run_id != self._run_id:
            raise PipelineSupersededError(run_id)

        stage.start()
        self._publish(result)
        started = time.perf_counter()
        try:
            output = await step(data)
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            stage.fail(str(e), duration_ms)
            self._publish(result)
            logger.error("pipeline.stage.failed", run_id=run_id, stage=stage.key, error=str(e))
            raise PipelineStageError(stage.key, e) from e

        duration_ms = (time.perf_counter() - started) * 1000
        stage.complete(output, duration_ms)
        self._publish(result)
        logger.debug("pipeline.stage.completed", run_id=run_id, stage=stage.key, duration_ms=round(duration_ms, 3))
        return output

    async def run(self, request: PipelineRequest) -> PipelineResult:
        """
        Run every stage for one request.

        Args:
            request: Trades plus view and accounting settings

        Returns:
            PipelineResult; trades is None when a stage failed or the run was
            superseded
        """
        self._run_id += 1
        run_id = self._run_id

        stages = [ProcessingStage(key=key, name=name) for key, name in STAGES]
        result = PipelineResult(run_id=run_id, stages=stages)
        self._publish(result)
        logger.info(
            "pipeline.run.started",
            run_id=run_id,
            trade_count=len(request.trades),
            cash_basis=request.cash_basis,
        )

        steps = self._build_steps(request)
        previous: asyncio.Task[Any] | None = None
        for stage in stages:
            previous = asyncio.create_task(self._run_stage(run_id, result, stage, steps[stage.key], previous))
        assert previous is not None

        try:
            trades = await previous
        except PipelineSupersededError:
            result.superseded = True
            logger.info("pipeline.run.superseded", run_id=run_id, latest_run_id=self._run_id)
            return result
        except PipelineStageError as e:
            result.error = str(e)
            logger.error("pipeline.run.failed", run_id=run_id, stage=e.stage_key, error=str(e.cause))
            return result
        finally:
            sizing = result.stage(PORTFOLIO_SIZING)
            if sizing is not None and sizing.status == StageStatus.COMPLETED:
                result.portfolio_sizes = sizing.result

        if run_id != self._run_id:
            result.superseded = True
            logger.info("pipeline.run.superseded", run_id=run_id, latest_run_id=self._run_id)
            return result

        result.trades = trades
        logger.info("pipeline.run.completed", run_id=run_id, trade_count=len(trades), progress=result.progress)
        return result

    async def close(self) -> None:
        await self._executor.close()
