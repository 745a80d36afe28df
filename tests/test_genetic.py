"""
Testes do núcleo genético
"""

import unittest
from collections import Counter

import numpy as np

from extrucut.core import CancellationToken, CuttingOptimizer
from extrucut.errors import OptimizationCancelledError
from extrucut.genetic import (
    GeneticAlgorithm, Individual, Objectives, default_population_size, island_sizes, order_crossover,
    run_genetic, shuffle_mutation, swap_mutation, tournament_select,
)
from extrucut.models import (
    ConvergenceReason, CutItem, GeneticConfig, GeneticParameters, StockOption,
)


def mixed_items():
    return [
        CutItem(id="a", profile_type="P1", length=2150, quantity=5),
        CutItem(id="b", profile_type="P1", length=1450, quantity=8),
        CutItem(id="c", profile_type="P1", length=930, quantity=9),
        CutItem(id="d", profile_type="P1", length=610, quantity=7),
        CutItem(id="e", profile_type="P2", length=1780, quantity=6),
        CutItem(id="f", profile_type="P2", length=420, quantity=11),
    ]


def mixed_stock():
    return [
        StockOption(profile_type="P1", stock_length=6000),
        StockOption(profile_type="P1", stock_length=6500, priority=2),
        StockOption(profile_type="P2", stock_length=6000),
    ]


def small_params(**overrides):
    values = {"population_size": 24, "max_generations": 12, "plateau_generations": 1000}
    values.update(overrides)
    return GeneticParameters(**values)


class TestOperators(unittest.TestCase):

    def setUp(self):
        self.rng = np.random.default_rng(3)
        self.parent1 = tuple(range(10))
        self.parent2 = tuple(reversed(range(10)))

    def test_order_crossover_yields_permutations(self):
        for _ in range(20):
            child1, child2 = order_crossover(self.parent1, self.parent2, self.rng)
            self.assertEqual(sorted(child1), list(range(10)))
            self.assertEqual(sorted(child2), list(range(10)))

    def test_order_crossover_is_reproducible(self):
        first = order_crossover(self.parent1, self.parent2, np.random.default_rng(11))
        second = order_crossover(self.parent1, self.parent2, np.random.default_rng(11))
        self.assertEqual(first, second)

    def test_mutations_yield_permutations(self):
        for operator in (swap_mutation, shuffle_mutation):
            with self.subTest(operator=operator.__name__):
                for _ in range(20):
                    self.assertEqual(sorted(operator(self.parent1, self.rng)), list(range(10)))

    def test_swap_changes_two_positions(self):
        child = swap_mutation(self.parent1, self.rng)
        self.assertEqual(sum(1 for a, b in zip(child, self.parent1) if a != b), 2)

    def test_single_gene_is_untouched(self):
        self.assertEqual(swap_mutation((0,), self.rng), (0,))
        self.assertEqual(order_crossover((0,), (0,), self.rng), ((0,), (0,)))

    def test_tournament_over_whole_population_picks_best(self):
        objectives = Objectives(waste=0, cost=0, bar_count=1, reclaimable=0, stock_length=1)
        population = [Individual((i,), objectives, fitness) for i, fitness in enumerate([0.5, 0.2, 0.9])]
        winner = tournament_select(population, self.rng, 3, key=lambda ind: (ind.fitness,))
        self.assertEqual(winner.chromosome, (1,))

    def test_island_sizes(self):
        self.assertEqual(island_sizes(20, 20), [20])
        self.assertEqual(island_sizes(44, 20), [20, 20, 4])
        self.assertEqual(island_sizes(12, 20), [12])

    def test_default_population_size(self):
        self.assertEqual(default_population_size(3), 20)
        self.assertEqual(default_population_size(40), 80)
        self.assertEqual(default_population_size(500), 200)


class TestGeneticAlgorithm(unittest.TestCase):

    def run_search(self, seed=42, **params):
        search = GeneticAlgorithm(mixed_items(), mixed_stock(), small_params(**params), seed=seed)
        return search, search.run()

    def test_same_seed_same_plan(self):
        config = GeneticConfig(seed=42, genetic=small_params())
        first_cuts, first_tel = run_genetic(mixed_items(), mixed_stock(), config, seed=42)
        second_cuts, second_tel = run_genetic(mixed_items(), mixed_stock(), config, seed=42)
        self.assertEqual([c.model_dump() for c in first_cuts], [c.model_dump() for c in second_cuts])
        self.assertEqual(first_tel, second_tel)

    def test_parallel_evaluation_matches_serial(self):
        serial_cuts, serial_tel = run_genetic(
            mixed_items(), mixed_stock(), GeneticConfig(genetic=small_params()), seed=5)
        parallel_cuts, parallel_tel = run_genetic(
            mixed_items(), mixed_stock(), GeneticConfig(genetic=small_params(evaluation_workers=4)), seed=5)
        self.assertEqual([c.model_dump() for c in serial_cuts], [c.model_dump() for c in parallel_cuts])
        self.assertEqual(serial_tel.best_fitness, parallel_tel.best_fitness)

    def test_never_worse_than_ffd_seed(self):
        search, (arena, telemetry) = self.run_search()
        ffd_fitness = search.model.score(search.model.measure(search.decode(search.identity())))
        self.assertLessEqual(telemetry.best_fitness, ffd_fitness + 1e-12)

    def test_best_fitness_never_worsens(self):
        _, (_, telemetry) = self.run_search()
        best = [stats.best_fitness for stats in telemetry.history]
        self.assertEqual(len(best), telemetry.generations + 1)
        for previous, current in zip(best, best[1:]):
            self.assertLessEqual(current, previous + 1e-12)

    def test_more_generations_never_hurt(self):
        _, (_, short) = self.run_search(seed=9, max_generations=4)
        _, (_, long) = self.run_search(seed=9, max_generations=16)
        self.assertLessEqual(long.best_fitness, short.best_fitness + 1e-12)

    def test_larger_population_never_hurts(self):
        for seed in range(8):
            with self.subTest(seed=seed):
                _, (_, small) = self.run_search(seed=seed, population_size=20, max_generations=10)
                _, (_, large) = self.run_search(seed=seed, population_size=40, max_generations=10)
                self.assertLessEqual(large.best_fitness, small.best_fitness + 1e-12)

    def test_first_island_repeats_smaller_run(self):
        small = GeneticAlgorithm(mixed_items(), mixed_stock(), small_params(population_size=20), seed=6)
        large = GeneticAlgorithm(mixed_items(), mixed_stock(), small_params(population_size=44), seed=6)
        small_islands, large_islands = small.create_islands(), large.create_islands()

        self.assertEqual([len(island.population) for island in large_islands], [20, 20, 4])
        self.assertEqual([ind.chromosome for ind in small_islands[0].population],
                         [ind.chromosome for ind in large_islands[0].population])
        self.assertEqual(large.run()[1].island_count, 3)

    def test_stops_on_generation_cap(self):
        _, (_, telemetry) = self.run_search(max_generations=3)
        self.assertEqual(telemetry.generations, 3)
        self.assertEqual(telemetry.convergence_reason, ConvergenceReason.MAX_GENERATIONS)

    def test_stops_on_plateau(self):
        _, (_, telemetry) = self.run_search(max_generations=500, plateau_generations=2)
        self.assertEqual(telemetry.convergence_reason, ConvergenceReason.FITNESS_PLATEAU)
        self.assertLess(telemetry.generations, 500)

    def test_decoded_plan_serves_all_demand(self):
        cuts, _ = run_genetic(mixed_items(), mixed_stock(), GeneticConfig(genetic=small_params()), seed=1)
        produced = Counter(s.item_id for cut in cuts for s in cut.segments)
        self.assertEqual(produced, Counter({item.id: item.quantity for item in mixed_items()}))
        for cut in cuts:
            self.assertLessEqual(cut.used_length + cut.kerf_loss, cut.stock_length + 1e-9)

    def test_cancelled_token(self):
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(OptimizationCancelledError):
            run_genetic(mixed_items(), mixed_stock(), GeneticConfig(genetic=small_params()), seed=1, token=token)


class TestGeneticThroughOptimizer(unittest.TestCase):

    def test_tiny_time_budget_still_returns_plan(self):
        items = [CutItem(id=f"peca-{i}", profile_type="P1", length=300 + 37 * i, quantity=4) for i in range(20)]
        stock = [StockOption(profile_type="P1", stock_length=6000)]
        config = GeneticConfig(time_budget_ms=1, seed=3, genetic=GeneticParameters(max_generations=10000))

        result = CuttingOptimizer().optimize(items, stock, config)

        self.assertEqual(result.convergence_reason, ConvergenceReason.TIME_BUDGET)
        self.assertEqual(sum(cut.segment_count for cut in result.cuts), 80)
        self.assertIn("time_budget", {rec.type for rec in result.recommendations})

    def test_seed_is_recorded_and_replayable(self):
        optimizer = CuttingOptimizer()
        config = GeneticConfig(genetic=small_params())
        first = optimizer.optimize(mixed_items(), mixed_stock(), config)
        self.assertIsNotNone(first.seed)
        self.assertEqual(first.telemetry.seed, first.seed)

        replay = optimizer.optimize(mixed_items(), mixed_stock(),
                                    config.model_copy(update={"seed": first.seed}))
        self.assertEqual([c.model_dump() for c in first.cuts], [c.model_dump() for c in replay.cuts])


if __name__ == '__main__':
    unittest.main()
