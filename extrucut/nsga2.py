"""
NSGA-II: otimização multiobjetivo (desperdício, custo, número de barras)

Usa a mesma codificação, decodificador e operadores do algoritmo genético;
muda apenas a seleção (ordenação não dominada + distância de aglomeração).
"""

import logging
import math
from typing import List, Sequence, Tuple

import numpy as np

from .genetic import GeneticSearch, Individual
from .models import ConvergenceReason, Cut, ParetoPoint, ParetoTelemetry, ScalarizationWeights
from .packing import CutArena

logger = logging.getLogger(__name__)

DOMINANCE_EPSILON = 1e-9


def dominates(a: Individual, b: Individual) -> bool:
    """a domina b: não pior em todos os objetivos e estritamente melhor em ao menos um"""
    better = False
    for x, y in zip(a.objectives.vector(), b.objectives.vector()):
        if x > y + DOMINANCE_EPSILON:
            return False
        if x < y - DOMINANCE_EPSILON:
            better = True
    return better


def fast_non_dominated_sort(population: Sequence[Individual]) -> List[List[Individual]]:
    """
    Ordenação rápida não dominada (Deb et al., 2002)

    Atribui `rank` a cada indivíduo (0 = frente de Pareto) e devolve as
    frentes em ordem; dentro de cada frente a ordem da população é mantida.
    """
    size = len(population)
    dominated_by: List[List[int]] = [[] for _ in range(size)]
    domination_count = [0] * size
    fronts: List[List[int]] = [[]]

    for p in range(size):
        for q in range(size):
            if p == q:
                continue
            if dominates(population[p], population[q]):
                dominated_by[p].append(q)
            elif dominates(population[q], population[p]):
                domination_count[p] += 1
        if domination_count[p] == 0:
            population[p].rank = 0
            fronts[0].append(p)

    current = 0
    while fronts[current]:
        following = []
        for p in fronts[current]:
            for q in dominated_by[p]:
                domination_count[q] -= 1
                if domination_count[q] == 0:
                    population[q].rank = current + 1
                    following.append(q)
        current += 1
        fronts.append(sorted(following))

    return [[population[i] for i in front] for front in fronts if front]


def assign_crowding_distance(front: Sequence[Individual]) -> None:
    """Distância de aglomeração; extremos de cada objetivo recebem infinito"""
    if not front:
        return
    for ind in front:
        ind.crowding_distance = 0.0
    if len(front) <= 2:
        for ind in front:
            ind.crowding_distance = math.inf
        return

    for m in range(3):
        ordered = sorted(front, key=lambda ind: ind.objectives.vector()[m])
        low = ordered[0].objectives.vector()[m]
        high = ordered[-1].objectives.vector()[m]
        span = high - low
        if span <= 0:
            continue
        ordered[0].crowding_distance = math.inf
        ordered[-1].crowding_distance = math.inf
        for i in range(1, len(ordered) - 1):
            if math.isinf(ordered[i].crowding_distance):
                continue
            gap = ordered[i + 1].objectives.vector()[m] - ordered[i - 1].objectives.vector()[m]
            ordered[i].crowding_distance += gap / span


def crowded_comparison_key(ind: Individual) -> tuple:
    return (ind.rank, -ind.crowding_distance)


def unique_front(front: Sequence[Individual]) -> List[Individual]:
    """Remove soluções com objetivos idênticos, preservando a primeira ocorrência"""
    seen = set()
    unique = []
    for ind in front:
        key = tuple(round(v, 6) for v in ind.objectives.vector())
        if key not in seen:
            seen.add(key)
            unique.append(ind)
    return unique


def normalized_objectives(front: Sequence[Individual]) -> np.ndarray:
    """Objetivos normalizados por mín-máx (colunas constantes viram zero)"""
    matrix = np.array([ind.objectives.vector() for ind in front], dtype=float)
    low = matrix.min(axis=0)
    span = matrix.max(axis=0) - low
    span[span == 0] = 1.0
    return (matrix - low) / span


def recommend(front: Sequence[Individual], weights: ScalarizationWeights) -> Tuple[int, float]:
    """Índice da solução com menor soma ponderada normalizada (empate: primeira)"""
    scores = normalized_objectives(front) @ np.array([weights.waste, weights.cost, weights.bars])
    index = int(np.argmin(scores))
    return index, float(scores[index])


def spacing(front: Sequence[Individual]) -> float:
    """Métrica de espaçamento de Schott sobre os objetivos normalizados"""
    if len(front) < 2:
        return 0.0
    points = normalized_objectives(front)
    distances = np.abs(points[:, None, :] - points[None, :, :]).sum(axis=2)
    np.fill_diagonal(distances, np.inf)
    nearest = distances.min(axis=1)
    return float(np.sqrt(((nearest - nearest.mean()) ** 2).sum() / (len(front) - 1)))


def front_signature(population: Sequence[Individual]) -> frozenset:
    return frozenset(tuple(round(v, 6) for v in ind.objectives.vector())
                     for ind in population if ind.rank == 0)


class NSGA2(GeneticSearch):
    """NSGA-II com seleção ambiental elitista (pais + filhos)"""

    def __init__(self, items, stock, params, *, scalarization: ScalarizationWeights = None, **kwargs):
        super().__init__(items, stock, params, **kwargs)
        self.scalarization = scalarization or ScalarizationWeights()

    def select_survivors(self, combined: Sequence[Individual]) -> List[Individual]:
        survivors: List[Individual] = []
        for front in fast_non_dominated_sort(combined):
            assign_crowding_distance(front)
            if len(survivors) + len(front) <= self.population_size:
                survivors.extend(front)
                continue
            remaining = self.population_size - len(survivors)
            survivors.extend(sorted(front, key=lambda ind: -ind.crowding_distance)[:remaining])
            break
        return survivors

    def run(self) -> Tuple[CutArena, ParetoTelemetry]:
        self.start_clock()
        population = self.select_survivors(self.evaluate(self.initial_population()))
        signature = front_signature(population)
        generation = 0
        stagnation = 0

        logger.info(f"NSGA-II: {len(self.requests)} peças, população {self.population_size}, semente {self.seed}")

        while True:
            self.check_cancelled()
            reason = self.termination_reason(generation, stagnation)
            if reason is not None:
                break

            offspring = self.evaluate(self.breed(population, self.population_size, key=crowded_comparison_key))
            population = self.select_survivors(population + offspring)
            generation += 1

            current = front_signature(population)
            if current == signature:
                stagnation += 1
            else:
                signature = current
                stagnation = 0
            logger.debug(f"NSGA-II geração {generation}: frente com {len(current)} pontos")

        if reason == ConvergenceReason.TIME_BUDGET:
            logger.warning(f"NSGA-II interrompido pelo limite de tempo após {generation} gerações")

        front = unique_front([ind for ind in population if ind.rank == 0])
        front.sort(key=lambda ind: ind.objectives.vector())
        assign_crowding_distance(front)
        index, score = recommend(front, self.scalarization)
        chosen = front[index]

        logger.info(f"NSGA-II concluído em {generation} gerações ({reason.value}): "
                    f"{len(front)} soluções na frente, recomendada #{index}")

        telemetry = ParetoTelemetry(
            generations=generation,
            population_size=self.population_size,
            convergence_reason=reason,
            seed=self.seed,
            front=[
                ParetoPoint(
                    waste=ind.objectives.waste,
                    cost=ind.objectives.cost,
                    bar_count=ind.objectives.bar_count,
                    crowding_distance=None if math.isinf(ind.crowding_distance) else ind.crowding_distance,
                )
                for ind in front
            ],
            front_size=len(front),
            spacing=spacing(front),
            recommended_index=index,
            recommended_score=score,
            best_fitness=chosen.fitness,
        )
        return self.decode(chosen.chromosome), telemetry


def run_nsga2(items, stock, config, seed: int, token=None) -> Tuple[List[Cut], ParetoTelemetry]:
    search = NSGA2(
        items, stock, config.genetic,
        scalarization=config.scalarization,
        seed=seed,
        kerf_width=config.kerf_width,
        cost_model=config.cost_model,
        waste_policy=config.waste_policy,
        allow_tolerance_fit=config.allow_tolerance_fit,
        time_budget_ms=config.time_budget_ms,
        token=token,
    )
    arena, telemetry = search.run()
    return arena.to_cuts(config.waste_policy), telemetry
