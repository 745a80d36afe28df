"""
Orquestrador do motor de otimização de cortes
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .analytics import ResultAnalyzer
from .errors import (
    EmptyInputError, InfeasibleConstraintError, InvalidConfigurationError,
    InvariantViolationError, OptimizationCancelledError, OptimizationError,
)
from .genetic import run_genetic
from .models import (
    AlgorithmMode, BaseAlgorithmConfig, Cut, CutItem, FFDConfig,
    OptimizationRequest, OptimizationResult, StockOption,
)
from .nsga2 import run_nsga2
from .packing import EPSILON, build_catalog, check_coverage, run_heuristic
from .pooling import run_pooling

logger = logging.getLogger(__name__)

Strategy = Callable[..., Tuple[List[Cut], object]]


class RunState(str, Enum):
    """Estados de uma execução"""
    VALIDATING = "validating"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class CancellationToken:
    """Sinal de cancelamento cooperativo, seguro entre threads"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OptimizationCancelledError()


def resolve_seed(seed: Optional[int]) -> int:
    """Usa a semente informada ou sorteia uma nova (registrada no resultado)"""
    if seed is not None:
        return seed
    return int(np.random.SeedSequence().generate_state(1)[0])


def verify_plan(cuts: Sequence[Cut], items: Sequence[CutItem]) -> None:
    """
    Confere o plano gerado antes de publicá-lo

    Raises:
        InvariantViolationError: peça faltando/duplicada, barra estourada,
            sobra negativa ou peça fora da tolerância
    """
    expected = Counter()
    by_identity: Dict[int, CutItem] = {}
    for item in items:
        expected[id(item)] += item.quantity
        by_identity[id(item)] = item

    produced = Counter(id(segment.item) for cut in cuts for segment in cut.segments)
    if produced != expected:
        missing = sorted({by_identity[key].id for key in expected if produced[key] != expected[key]})
        raise InvariantViolationError("Quantidade de peças no plano difere da demanda",
                                      {"item_ids": missing})

    for cut in cuts:
        if cut.used_length + cut.kerf_loss > cut.stock_length + EPSILON:
            raise InvariantViolationError(f"Barra {cut.index} excede o comprimento disponível",
                                          {"cut_index": cut.index})
        if cut.remaining_length < 0:
            raise InvariantViolationError(f"Barra {cut.index} com sobra negativa", {"cut_index": cut.index})
        for segment in cut.segments:
            item = segment.item
            if not item.min_length - EPSILON <= segment.length <= item.max_length + EPSILON:
                raise InvariantViolationError(f"Peça {item.id} cortada fora da tolerância",
                                              {"item_id": item.id, "cut_index": cut.index})


class OptimizationRun:
    """
    Uma execução de otimização e sua máquina de estados

    VALIDATING -> RUNNING -> AGGREGATING -> DONE, ou FAILED a partir de
    qualquer estado. Cada execução é exclusiva de quem a criou.
    """

    def __init__(
        self,
        items: Sequence[CutItem],
        stock: Sequence[StockOption],
        config: BaseAlgorithmConfig,
        strategy: Optional[Strategy],
        token: Optional[CancellationToken] = None,
    ):
        self.items = list(items)
        self.stock = list(stock)
        self.config = config
        self.strategy = strategy
        self.token = token or CancellationToken()
        self.state: Optional[RunState] = None
        self.history: List[RunState] = []
        self.seed: Optional[int] = None
        self.result: Optional[OptimizationResult] = None
        self.error: Optional[Exception] = None

    def _transition(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"Execução {self.config.mode}: {state.value}")

    def validate(self) -> None:
        """
        Valida a entrada antes de qualquer empacotamento

        Raises:
            EmptyInputError: lista de peças vazia
            InfeasibleConstraintError: tolerância que anula o comprimento da peça
            MissingStockOptionError: perfil sem barra cadastrada
            ItemTooLongError: peças maiores que todas as barras do perfil
            InvalidConfigurationError: estratégia desconhecida
        """
        if not self.items:
            raise EmptyInputError()
        if self.strategy is None:
            raise InvalidConfigurationError(f"Estratégia não suportada: {self.config.mode}",
                                            {"mode": self.config.mode})
        swallowed = [item.id for item in self.items if item.min_length <= 0]
        if swallowed:
            raise InfeasibleConstraintError(swallowed, "tolerância maior ou igual ao comprimento da peça")
        check_coverage(self.items, build_catalog(self.stock), self.config.kerf_width,
                       self.config.allow_tolerance_fit)

    def execute(self) -> OptimizationResult:
        start_time = time.perf_counter()
        try:
            self._transition(RunState.VALIDATING)
            self.validate()

            self._transition(RunState.RUNNING)
            self.token.raise_if_cancelled()
            self.seed = resolve_seed(self.config.seed)
            cuts, telemetry = self.strategy(self.items, self.stock, self.config, self.seed, self.token)

            self._transition(RunState.AGGREGATING)
            verify_plan(cuts, self.items)
            work_orders = {item.work_order_id for item in self.items if item.work_order_id}
            self.result = ResultAnalyzer(self.config).summarize(
                cuts,
                AlgorithmMode(self.config.mode),
                telemetry,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
                work_order_count=len(work_orders),
                seed=self.seed,
                metadata={
                    "kerf_width": self.config.kerf_width,
                    "unit_count": sum(item.quantity for item in self.items),
                    "profile_types": sorted({item.profile_type for item in self.items}),
                },
            )
            self._transition(RunState.DONE)
            return self.result
        except OptimizationError as e:
            self.error = e
            self._transition(RunState.FAILED)
            logger.error(f"Otimização {self.config.mode} falhou [{e.code}]: {e.message}")
            raise
        except Exception as e:
            self.error = e
            self._transition(RunState.FAILED)
            logger.exception(f"Erro inesperado na otimização {self.config.mode}")
            raise


@dataclass
class BatchOutcome:
    """Resultado de um trabalho do lote: resultado ou erro, nunca ambos"""
    index: int
    result: Optional[OptimizationResult] = None
    error: Optional[OptimizationError] = None

    @property
    def success(self) -> bool:
        return self.error is None


class CuttingOptimizer:
    """
    Ponto de entrada do motor de otimização

    Não guarda estado entre chamadas; cada chamada cria sua própria
    OptimizationRun, o que permite uso concorrente da mesma instância.
    """

    def __init__(self):
        self.algorithms: Dict[str, Strategy] = {
            "ffd": self._heuristic,
            "bfd": self._heuristic,
            "genetic": run_genetic,
            "nsga-ii": run_nsga2,
            "pooling": run_pooling,
        }

    @staticmethod
    def _heuristic(items, stock, config, seed, token):
        return run_heuristic(items, stock, config, token=token)

    def create_run(
        self,
        items: Sequence[CutItem],
        stock: Sequence[StockOption],
        config: Optional[BaseAlgorithmConfig] = None,
        token: Optional[CancellationToken] = None,
    ) -> OptimizationRun:
        config = config or FFDConfig()
        return OptimizationRun(items, stock, config, self.algorithms.get(config.mode), token)

    def optimize(
        self,
        items: Sequence[CutItem],
        stock: Sequence[StockOption],
        config: Optional[BaseAlgorithmConfig] = None,
        token: Optional[CancellationToken] = None,
    ) -> OptimizationResult:
        """
        Otimiza o corte das peças

        Args:
            items: Peças a cortar
            stock: Catálogo de barras por perfil
            config: Estratégia e parâmetros (padrão: FFD)
            token: Token de cancelamento cooperativo

        Returns:
            Resultado da otimização

        Raises:
            OptimizationError: entrada inválida, cancelamento ou plano inconsistente
        """
        return self.create_run(items, stock, config, token).execute()

    def optimize_request(self, request: OptimizationRequest,
                         token: Optional[CancellationToken] = None) -> OptimizationResult:
        return self.optimize(request.items, request.stock, request.config, token)

    def _run_job(self, index: int, request: OptimizationRequest) -> BatchOutcome:
        try:
            return BatchOutcome(index=index, result=self.optimize_request(request))
        except OptimizationError as e:
            return BatchOutcome(index=index, error=e)

    def optimize_batch(self, requests: Sequence[OptimizationRequest],
                       max_workers: Optional[int] = None) -> List[BatchOutcome]:
        """
        Executa trabalhos independentes em paralelo

        Falhas de um trabalho não afetam os demais; os resultados seguem a
        ordem dos trabalhos.
        """
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self._run_job, i, request) for i, request in enumerate(requests)]
            outcomes = [future.result() for future in futures]
        failed = sum(1 for outcome in outcomes if not outcome.success)
        logger.info(f"Lote concluído: {len(outcomes) - failed} sucesso(s), {failed} falha(s)")
        return outcomes
