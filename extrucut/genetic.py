"""
Núcleo genético: codificação por permutação, aptidão, operadores e convergência

Compartilhado pelo algoritmo genético mono-objetivo e pelo NSGA-II.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .analytics import estimate_total_cost, is_reclaimable
from .models import (
    ConvergenceReason, CostModel, Cut, CutItem, FitnessWeights, GenerationStats,
    GeneticParameters, GeneticTelemetry, StockOption, WastePolicy,
)
from .packing import CutArena, build_catalog, check_coverage, decode_sequence, decreasing_order, expand_requests

logger = logging.getLogger(__name__)

MIN_POPULATION = 20
MAX_POPULATION = 200
IMPROVEMENT_EPSILON = 1e-9

Chromosome = Tuple[int, ...]


@dataclass(frozen=True)
class Objectives:
    """Medidas de um plano decodificado"""
    waste: float          # barras - peças (mm), inclui perda de lâmina
    cost: float
    bar_count: int
    reclaimable: float    # sobra reaproveitável (mm)
    stock_length: float   # comprimento total de barras (mm)

    def vector(self) -> Tuple[float, float, float]:
        return (self.waste, self.cost, float(self.bar_count))


@dataclass
class Individual:
    chromosome: Chromosome
    objectives: Objectives
    fitness: float
    rank: int = 0
    crowding_distance: float = 0.0


def default_population_size(unit_count: int) -> int:
    """Tamanho proporcional ao número de peças, limitado a [20, 200]"""
    return max(MIN_POPULATION, min(MAX_POPULATION, 2 * unit_count))


# ---------------------------------------------------------------------------
# Operadores (o gerador aleatório é sempre recebido explicitamente)
# ---------------------------------------------------------------------------

def _two_points(size: int, rng: np.random.Generator) -> Tuple[int, int]:
    a, b = rng.choice(size, size=2, replace=False)
    return (int(a), int(b)) if a < b else (int(b), int(a))


def _ox_child(donor: Chromosome, filler: Chromosome, start: int, end: int) -> Chromosome:
    child: List[Optional[int]] = [None] * len(donor)
    child[start:end + 1] = donor[start:end + 1]
    kept = set(donor[start:end + 1])
    remaining = iter(gene for gene in filler if gene not in kept)
    for i, gene in enumerate(child):
        if gene is None:
            child[i] = next(remaining)
    return tuple(child)


def order_crossover(parent1: Chromosome, parent2: Chromosome,
                    rng: np.random.Generator) -> Tuple[Chromosome, Chromosome]:
    """
    Crossover de ordem (OX)

    Cada filho herda um trecho contíguo de um dos pais e completa as demais
    posições na ordem relativa em que os genes aparecem no outro pai.
    """
    if len(parent1) < 2:
        return tuple(parent1), tuple(parent2)
    start, end = _two_points(len(parent1), rng)
    return _ox_child(parent1, parent2, start, end), _ox_child(parent2, parent1, start, end)


def swap_mutation(chromosome: Chromosome, rng: np.random.Generator) -> Chromosome:
    if len(chromosome) < 2:
        return chromosome
    i, j = _two_points(len(chromosome), rng)
    genes = list(chromosome)
    genes[i], genes[j] = genes[j], genes[i]
    return tuple(genes)


def shuffle_mutation(chromosome: Chromosome, rng: np.random.Generator) -> Chromosome:
    """Embaralha um trecho aleatório do cromossomo"""
    if len(chromosome) < 2:
        return chromosome
    start, end = _two_points(len(chromosome), rng)
    window = chromosome[start:end + 1]
    shuffled = tuple(window[int(k)] for k in rng.permutation(len(window)))
    return chromosome[:start] + shuffled + chromosome[end + 1:]


def mutate(chromosome: Chromosome, rng: np.random.Generator) -> Chromosome:
    if rng.random() < 0.5:
        return swap_mutation(chromosome, rng)
    return shuffle_mutation(chromosome, rng)


def tournament_select(population: Sequence[Individual], rng: np.random.Generator,
                      size: int, key: Callable[[Individual], tuple]) -> Individual:
    """Seleção por torneio sem repetição; empates resolvidos pelo índice"""
    k = min(size, len(population))
    contenders = rng.choice(len(population), size=k, replace=False)
    best = min((int(i) for i in contenders), key=lambda i: (key(population[i]), i))
    return population[best]


# ---------------------------------------------------------------------------
# Aptidão
# ---------------------------------------------------------------------------

class FitnessModel:
    """
    Aptidão escalar (menor é melhor)

    fitness = w_waste * desperdício/barras + w_bars * barras/limite_inferior
              + w_cost * custo/custo_referência - w_reclaim * reaproveitável/barras

    O custo de referência é o do plano FFD, calibrado uma vez por execução.
    """

    def __init__(self, items: Sequence[CutItem], catalog: Dict[str, List[StockOption]], kerf_width: float,
                 cost_model: CostModel, waste_policy: WastePolicy, weights: FitnessWeights):
        self.cost_model = cost_model
        self.waste_policy = waste_policy
        self.weights = weights
        self.reference_cost = 0.0
        self.lower_bound = self._lower_bound(items, catalog, kerf_width)

    @staticmethod
    def _lower_bound(items, catalog, kerf_width) -> int:
        demand: Dict[str, float] = {}
        for item in items:
            demand[item.profile_type] = demand.get(item.profile_type, 0.0) + (item.length + kerf_width) * item.quantity
        bound = 0
        for profile_type, total in demand.items():
            longest = max(option.stock_length for option in catalog[profile_type])
            bound += math.ceil(total / longest)
        return max(1, bound)

    def calibrate(self, objectives: Objectives) -> None:
        self.reference_cost = objectives.cost

    def measure(self, arena: CutArena) -> Objectives:
        stock_length = sum(b.stock_length for b in arena.bins)
        used = sum(b.used_length for b in arena.bins)
        reclaimable = sum(b.remaining_length for b in arena.bins
                          if is_reclaimable(b.remaining_length, self.waste_policy))
        return Objectives(
            waste=stock_length - used,
            cost=estimate_total_cost(arena.bins, self.cost_model, self.waste_policy),
            bar_count=len(arena.bins),
            reclaimable=reclaimable,
            stock_length=stock_length,
        )

    def score(self, objectives: Objectives) -> float:
        w = self.weights
        if objectives.stock_length <= 0:
            return math.inf
        cost_ratio = objectives.cost / self.reference_cost if self.reference_cost > 0 else 0.0
        return (w.waste * objectives.waste / objectives.stock_length
                + w.bars * objectives.bar_count / self.lower_bound
                + w.cost * cost_ratio
                - w.reclaim * objectives.reclaimable / objectives.stock_length)


# ---------------------------------------------------------------------------
# Busca
# ---------------------------------------------------------------------------

class GeneticSearch:
    """
    Estado de uma execução evolutiva

    População, cache de avaliações e gerador aleatório pertencem somente a
    esta instância; execuções paralelas usam instâncias distintas.
    """

    def __init__(
        self,
        items: Sequence[CutItem],
        stock: Sequence[StockOption],
        params: GeneticParameters,
        *,
        seed: int,
        kerf_width: float = 3.5,
        cost_model: Optional[CostModel] = None,
        waste_policy: Optional[WastePolicy] = None,
        allow_tolerance_fit: bool = False,
        time_budget_ms: Optional[float] = None,
        token=None,
    ):
        self.catalog = build_catalog(stock)
        check_coverage(items, self.catalog, kerf_width, allow_tolerance_fit)

        self.params = params
        self.kerf_width = kerf_width
        self.allow_tolerance_fit = allow_tolerance_fit
        self.waste_policy = waste_policy or WastePolicy()
        self.time_budget_ms = time_budget_ms
        self.token = token
        self.seed = seed
        self.rng = np.random.default_rng(seed)

        # Gene i = i-ésima unidade na ordem FFD; a identidade é o indivíduo FFD
        self.requests = decreasing_order(expand_requests(items))
        self.population_size = params.population_size or default_population_size(len(self.requests))
        self.model = FitnessModel(items, self.catalog, kerf_width, cost_model or CostModel(),
                                  self.waste_policy, params.fitness_weights)
        self._cache: Dict[Chromosome, Tuple[Objectives, float]] = {}
        self._deadline: Optional[float] = None

        seed_objectives = self.model.measure(self.decode(self.identity()))
        self.model.calibrate(seed_objectives)

    def identity(self) -> Chromosome:
        return tuple(range(len(self.requests)))

    def decode(self, chromosome: Chromosome) -> CutArena:
        return decode_sequence(
            (self.requests[gene] for gene in chromosome),
            self.catalog, self.kerf_width, self.allow_tolerance_fit, token=self.token,
        )

    def _evaluate_one(self, chromosome: Chromosome) -> Tuple[Objectives, float]:
        objectives = self.model.measure(self.decode(chromosome))
        return objectives, self.model.score(objectives)

    def evaluate(self, chromosomes: Sequence[Chromosome]) -> List[Individual]:
        """Avalia a população; a ordem do resultado segue a entrada"""
        pending = [c for c in dict.fromkeys(chromosomes) if c not in self._cache]
        workers = self.params.evaluation_workers
        if workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                evaluated = list(pool.map(self._evaluate_one, pending))
        else:
            evaluated = [self._evaluate_one(c) for c in pending]
        self._cache.update(zip(pending, evaluated))

        population = []
        for chromosome in chromosomes:
            objectives, fitness = self._cache[chromosome]
            population.append(Individual(chromosome, objectives, fitness))
        return population

    @property
    def evaluations(self) -> int:
        return len(self._cache)

    def initial_population(self, count: Optional[int] = None,
                           rng: Optional[np.random.Generator] = None) -> List[Chromosome]:
        """Indivíduo FFD, variante FFD com empates embaralhados e permutações aleatórias"""
        count = count or self.population_size
        rng = rng or self.rng
        size = len(self.requests)
        population = [self.identity()]
        if count > 1:
            noise = rng.random(size)
            population.append(tuple(sorted(range(size), key=lambda g: (-self.requests[g].length, noise[g]))))
        while len(population) < count:
            population.append(tuple(int(g) for g in rng.permutation(size)))
        return population

    def breed(self, population: Sequence[Individual], count: int,
              key: Callable[[Individual], tuple], rng: Optional[np.random.Generator] = None) -> List[Chromosome]:
        params = self.params
        rng = rng or self.rng
        children: List[Chromosome] = []
        while len(children) < count:
            parent1 = tournament_select(population, rng, params.tournament_size, key).chromosome
            parent2 = tournament_select(population, rng, params.tournament_size, key).chromosome
            if rng.random() < params.crossover_rate:
                offspring = order_crossover(parent1, parent2, rng)
            else:
                offspring = (parent1, parent2)
            for child in offspring:
                if rng.random() < params.mutation_rate:
                    child = mutate(child, rng)
                if len(children) < count:
                    children.append(child)
        return children

    def start_clock(self) -> None:
        if self.time_budget_ms is not None:
            self._deadline = time.perf_counter() + self.time_budget_ms / 1000.0

    def termination_reason(self, generation: int, stagnation: int) -> Optional[ConvergenceReason]:
        if self._deadline is not None and time.perf_counter() >= self._deadline:
            return ConvergenceReason.TIME_BUDGET
        if generation >= self.params.max_generations:
            return ConvergenceReason.MAX_GENERATIONS
        if stagnation >= self.params.plateau_generations:
            return ConvergenceReason.FITNESS_PLATEAU
        return None

    def check_cancelled(self) -> None:
        if self.token is not None:
            self.token.raise_if_cancelled()


def generation_stats(generation: int, population: Sequence[Individual]) -> GenerationStats:
    fitness = np.array([ind.fitness for ind in population])
    return GenerationStats(
        generation=generation,
        best_fitness=float(fitness.min()),
        average_fitness=float(fitness.mean()),
        diversity=len({ind.chromosome for ind in population}) / len(population),
    )


@dataclass
class Island:
    """Subpopulação com gerador, elite e convergência próprios"""
    rng: np.random.Generator
    size: int
    population: List[Individual]
    best: Individual
    stagnation: int = 0
    reason: Optional[ConvergenceReason] = None


def island_sizes(population_size: int, island_size: int) -> List[int]:
    """Ilhas completas seguidas de uma ilha com o restante"""
    full, rest = divmod(population_size, island_size)
    sizes = [island_size] * full
    if rest:
        sizes.append(rest)
    return sizes


class GeneticAlgorithm(GeneticSearch):
    """
    Algoritmo genético mono-objetivo com elitismo, em modelo de ilhas

    A população é dividida em ilhas de `island_size` indivíduos, cada uma
    com o gerador `SeedSequence(seed).spawn(k)[i]`. As ilhas não trocam
    indivíduos e cada uma para ao atingir seu próprio platô, de modo que a
    ilha 0 repete exatamente a execução com população menor e a mesma semente.
    """

    def elite_count(self, size: int) -> int:
        if self.params.elite_count is not None:
            return min(self.params.elite_count, size)
        return max(1, size // 10)

    def create_islands(self) -> List[Island]:
        sizes = island_sizes(self.population_size, self.params.island_size)
        children = np.random.SeedSequence(self.seed).spawn(len(sizes))
        rngs = [np.random.default_rng(child) for child in children]

        chromosomes = [self.initial_population(size, rng) for size, rng in zip(sizes, rngs)]
        evaluated = self.evaluate([c for group in chromosomes for c in group])

        islands = []
        start = 0
        for size, rng in zip(sizes, rngs):
            population = evaluated[start:start + size]
            start += size
            islands.append(Island(rng, size, population, min(population, key=lambda ind: ind.fitness)))
        return islands

    def evolve(self, active: Sequence[Island]) -> None:
        """Uma geração em cada ilha ativa; as avaliações são feitas em lote"""
        broods = [
            self.breed(island.population, island.size - self.elite_count(island.size),
                       key=lambda ind: (ind.fitness,), rng=island.rng)
            for island in active
        ]
        evaluated = self.evaluate([c for brood in broods for c in brood])

        start = 0
        for island, brood in zip(active, broods):
            offspring = evaluated[start:start + len(brood)]
            start += len(brood)
            ranked = sorted(island.population, key=lambda ind: ind.fitness)
            island.population = ranked[:self.elite_count(island.size)] + offspring

            candidate = min(island.population, key=lambda ind: ind.fitness)
            if candidate.fitness < island.best.fitness - IMPROVEMENT_EPSILON:
                island.best = candidate
                island.stagnation = 0
            else:
                island.stagnation += 1

    def run(self) -> Tuple[CutArena, GeneticTelemetry]:
        self.start_clock()
        islands = self.create_islands()
        population = [ind for island in islands for ind in island.population]
        history = [generation_stats(0, population)]
        generation = 0
        reason = None

        logger.info(f"GA: {len(self.requests)} peças, população {self.population_size} "
                    f"em {len(islands)} ilha(s), semente {self.seed}")

        while True:
            self.check_cancelled()
            for island in islands:
                if island.reason is None:
                    island.reason = self.termination_reason(generation, island.stagnation)
                    if island.reason is not None:
                        reason = island.reason
            active = [island for island in islands if island.reason is None]
            if not active:
                break

            self.evolve(active)
            generation += 1

            population = [ind for island in islands for ind in island.population]
            history.append(generation_stats(generation, population))
            logger.debug(f"GA geração {generation}: melhor {history[-1].best_fitness:.6f}, "
                         f"{len(active)} ilha(s) ativa(s)")

        best = min((island.best for island in islands), key=lambda ind: ind.fitness)

        if reason == ConvergenceReason.TIME_BUDGET:
            logger.warning(f"GA interrompido pelo limite de tempo após {generation} gerações")
        else:
            logger.info(f"GA concluído em {generation} gerações ({reason.value}), aptidão {best.fitness:.6f}")

        telemetry = GeneticTelemetry(
            generations=generation,
            population_size=self.population_size,
            best_fitness=best.fitness,
            convergence_reason=reason,
            seed=self.seed,
            island_count=len(islands),
            evaluations=self.evaluations,
            history=history,
        )
        return self.decode(best.chromosome), telemetry


def run_genetic(items, stock, config, seed: int, token=None) -> Tuple[List[Cut], GeneticTelemetry]:
    """Executa o algoritmo genético com os parâmetros da configuração"""
    search = GeneticAlgorithm(
        items, stock, config.genetic,
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
