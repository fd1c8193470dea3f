"""Staged trade processing pipeline."""

from qjournal.services.pipeline.executor import (
    InlineExecutor,
    TradeBatchExecutor,
    WorkerExecutor,
    process_request,
)
from qjournal.services.pipeline.models import (
    DateRangeFilter,
    NormalizationRequest,
    NormalizationResponse,
    PipelineError,
    PipelineRequest,
    PipelineResult,
    PipelineStageError,
    PipelineSupersededError,
    ProcessingStage,
    SortDescriptor,
    StageStatus,
)
from qjournal.services.pipeline.service import TradePipeline
from qjournal.services.pipeline.stages import (
    STAGES,
    apply_cumulative_impact,
    chronological_sort_key,
    compute_portfolio_sizes,
    expand_for_accounting,
    filter_trades,
    normalize_batch,
    sort_trades,
)

__all__ = [
    "DateRangeFilter",
    "InlineExecutor",
    "NormalizationRequest",
    "NormalizationResponse",
    "PipelineError",
    "PipelineRequest",
    "PipelineResult",
    "PipelineStageError",
    "PipelineSupersededError",
    "ProcessingStage",
    "STAGES",
    "SortDescriptor",
    "StageStatus",
    "TradeBatchExecutor",
    "TradePipeline",
    "WorkerExecutor",
    "apply_cumulative_impact",
    "chronological_sort_key",
    "compute_portfolio_sizes",
    "expand_for_accounting",
    "filter_trades",
    "normalize_batch",
    "process_request",
    "sort_trades",
]
