"""Normalization executors.

The pipeline hands each normalization batch to an executor:

- InlineExecutor computes in-process on the event loop thread.
- WorkerExecutor queues requests to a background worker task that computes
  in a thread and answers through futures correlated by request id. When the
  worker cannot start, or answers with an error, the batch is recomputed
  inline.

Both go through process_request(), so a batch yields the same trades
whichever executor runs it.
"""

import asyncio
import contextlib
from typing import Callable, Protocol

from qjournal.services.journal.normalizer import normalize_trades
from qjournal.services.journal.sizing import PortfolioSizeResolver
from qjournal.services.pipeline.models import NormalizationRequest, NormalizationResponse, PipelineError
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()


class TradeBatchExecutor(Protocol):
    """Executor interface for normalization batches.

    Example:
        >>> executor: TradeBatchExecutor = WorkerExecutor()
        >>> response = await executor.normalize(NormalizationRequest(trades=trades, portfolio_sizes=sizes))
        >>> await executor.close()
    """

    async def normalize(self, request: NormalizationRequest) -> NormalizationResponse:
        """Normalize one batch.

        Raises:
            PipelineError: If a request with the same id is already pending
        """
        ...

    async def close(self) -> None:
        """Release background resources."""
        ...


def process_request(request: NormalizationRequest) -> NormalizationResponse:
    """Normalize a batch against its month-keyed capital map."""
    resolver = PortfolioSizeResolver.from_month_keys(request.portfolio_sizes, request.default_portfolio_size)
    trades = normalize_trades(request.trades, resolver, request.reference_date)
    return NormalizationResponse(id=request.id, trades=trades)


class InlineExecutor:
    """Computes batches synchronously in the calling task."""

    def __init__(self, compute: Callable[[NormalizationRequest], NormalizationResponse] = process_request) -> None:
        self._compute = compute

    async def normalize(self, request: NormalizationRequest) -> NormalizationResponse:
        return self._compute(request)

    async def close(self) -> None:
        return None


class WorkerExecutor:
    """
    Request/response executor backed by a background worker task.

    The worker is started lazily on the first request of an event loop and
    pulls requests off an asyncio.Queue; each computation runs in a thread via
    asyncio.to_thread. At most one request per id may be pending.

    Args:
        compute: Batch computation run in the worker thread
        fallback: Executor used when the worker cannot start or fails a batch
    """

    def __init__(
        self,
        compute: Callable[[NormalizationRequest], NormalizationResponse] = process_request,
        fallback: TradeBatchExecutor | None = None,
    ) -> None:
        self._compute = compute
        self._fallback: TradeBatchExecutor = fallback if fallback is not None else InlineExecutor()
        self._queue: asyncio.Queue[NormalizationRequest] | None = None
        self._task: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[NormalizationResponse]] = {}

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _start_worker(self) -> None:
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._worker(self._queue))

    def _ensure_worker(self) -> bool:
        if self.is_running:
            return True
        try:
            self._start_worker()
        except Exception as e:
            logger.warning("pipeline.worker.start_failed", error=str(e))
            return False
        logger.debug("pipeline.worker.started")
        return True

    async def _worker(self, queue: asyncio.Queue[NormalizationRequest]) -> None:
        while True:
            request = await queue.get()
            try:
                response = await asyncio.to_thread(self._compute, request)
                if response.id != request.id:
                    response = NormalizationResponse(
                        id=request.id, error=f"Response id {response.id} does not match request"
                    )
            except Exception as e:
                response = NormalizationResponse(id=request.id, error=str(e))

            future = self._pending.get(request.id)
            if future is not None and not future.done():
                future.set_result(response)
            queue.task_done()

    async def normalize(self, request: NormalizationRequest) -> NormalizationResponse:
        if request.id in self._pending:
            raise PipelineError(f"Request {request.id} is already pending")

        if not self._ensure_worker():
            return await self._fallback.normalize(request)
        assert self._queue is not None

        future: asyncio.Future[NormalizationResponse] = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        try:
            self._queue.put_nowait(request)
            response = await future
        finally:
            self._pending.pop(request.id, None)

        if response.error is not None:
            logger.warning("pipeline.worker.failed", request_id=request.id, error=response.error)
            return await self._fallback.normalize(request)
        return response

    async def close(self) -> None:
        """Stop the worker; requests still pending fail with PipelineError."""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(PipelineError("Executor closed"))
        self._pending.clear()

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._queue = None
        await self._fallback.close()
