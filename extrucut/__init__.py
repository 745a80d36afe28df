"""
ExtruCut - Motor de Otimização de Cortes de Perfis de Alumínio

Distribui peças em barras comerciais de perfis extrudados minimizando
desperdício, custo e número de barras, com heurísticas gulosas, algoritmo
genético, NSGA-II e consolidação de perfis entre ordens de produção.
"""

from .core import BatchOutcome, CancellationToken, CuttingOptimizer, OptimizationRun, RunState
from .errors import (
    EmptyInputError, InfeasibleConstraintError, InvalidConfigurationError, InvariantViolationError,
    ItemTooLongError, MissingStockOptionError, OptimizationCancelledError, OptimizationError,
)
from .models import (
    BFDConfig, CostModel, Cut, CutItem, FFDConfig, GeneticConfig, GeneticParameters,
    NSGA2Config, OptimizationRequest, OptimizationResult, PoolingConfig, Segment, StockOption,
    WastePolicy,
)

__version__ = "1.0.0"
__author__ = "ExtruCut Team"

__all__ = [
    "CuttingOptimizer",
    "OptimizationRun",
    "RunState",
    "CancellationToken",
    "BatchOutcome",
    "CutItem",
    "StockOption",
    "Segment",
    "Cut",
    "OptimizationResult",
    "OptimizationRequest",
    "FFDConfig",
    "BFDConfig",
    "GeneticConfig",
    "NSGA2Config",
    "PoolingConfig",
    "GeneticParameters",
    "CostModel",
    "WastePolicy",
    "OptimizationError",
    "EmptyInputError",
    "ItemTooLongError",
    "MissingStockOptionError",
    "InfeasibleConstraintError",
    "InvalidConfigurationError",
    "OptimizationCancelledError",
    "InvariantViolationError",
]
