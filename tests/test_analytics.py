"""
Testes da análise de resultados (sobras, custos, qualidade, recomendações)
"""

import unittest

from extrucut.analytics import (
    ResultAnalyzer, assess_quality, build_recommendations, categorize_waste, compute_cost,
    grade_for, is_reclaimable, stock_summary, work_order_breakdown,
)
from extrucut.models import (
    AlgorithmMode, CostModel, CutItem, FFDConfig, HeuristicTelemetry, QualityGrade,
    QualityWeights, StockOption, WasteCategory, WastePolicy,
)
from extrucut.packing import pack_ffd


def scenario_a_cuts():
    items = [CutItem(id="p", profile_type="P1", length=1000, quantity=3)]
    stock = [StockOption(profile_type="P1", stock_length=3100)]
    return pack_ffd(items, stock, kerf_width=5)


class TestWasteClassification(unittest.TestCase):

    def test_category_boundaries(self):
        policy = WastePolicy()
        cases = [
            (0, WasteCategory.MINIMAL),
            (49.9, WasteCategory.MINIMAL),
            (50, WasteCategory.SMALL),
            (149.9, WasteCategory.SMALL),
            (150, WasteCategory.MEDIUM),
            (299.9, WasteCategory.MEDIUM),
            (300, WasteCategory.LARGE),
            (500, WasteCategory.LARGE),
            (500.1, WasteCategory.EXCESSIVE),
        ]
        for remaining, expected in cases:
            with self.subTest(remaining=remaining):
                self.assertEqual(categorize_waste(remaining, policy), expected)

    def test_reclaimable(self):
        policy = WastePolicy()
        self.assertFalse(is_reclaimable(299, policy))
        self.assertTrue(is_reclaimable(300, policy))
        self.assertTrue(is_reclaimable(2500, policy))

        strict = WastePolicy(reuse_floor=400)
        self.assertFalse(is_reclaimable(350, strict))
        self.assertTrue(is_reclaimable(450, strict))


class TestCost(unittest.TestCase):

    def test_breakdown_for_single_bar(self):
        cost = compute_cost(scenario_a_cuts(), CostModel(), WastePolicy())

        self.assertAlmostEqual(cost.material_cost, 3.1 * 12)
        self.assertAlmostEqual(cost.machine_minutes, 2.5)
        self.assertAlmostEqual(cost.labor_cost, 2.5 / 60 * 45)
        self.assertAlmostEqual(cost.time_cost, 2.5 / 60 * 30)
        self.assertAlmostEqual(cost.waste_cost, 0.100 * 2)
        self.assertAlmostEqual(cost.setup_cost, 15)
        self.assertAlmostEqual(cost.cutting_cost, 1.5)
        self.assertAlmostEqual(cost.total_cost, 57.025)
        self.assertAlmostEqual(cost.cost_per_meter, 57.025 / 3.0)
        self.assertEqual(cost.setup_events, 1)

    def test_unit_cost_overrides_rate(self):
        items = [CutItem(id="p", profile_type="P1", length=1000, quantity=1)]
        stock = [StockOption(profile_type="P1", stock_length=3100, cost_per_unit=50)]
        cost = compute_cost(pack_ffd(items, stock), CostModel(), WastePolicy())
        self.assertAlmostEqual(cost.material_cost, 50)

    def test_reclaimable_offcut_is_not_charged_as_waste(self):
        items = [CutItem(id="p", profile_type="P1", length=1000, quantity=1)]
        stock = [StockOption(profile_type="P1", stock_length=3000)]
        cuts = pack_ffd(items, stock, kerf_width=0)
        self.assertTrue(cuts[0].is_reclaimable)
        cost = compute_cost(cuts, CostModel(), WastePolicy())
        self.assertAlmostEqual(cost.waste_cost, 0.0)

    def test_one_setup_per_stock_length(self):
        items = [
            CutItem(id="a", profile_type="P1", length=5000, quantity=2),
            CutItem(id="b", profile_type="P1", length=6500, quantity=1),
        ]
        stock = [
            StockOption(profile_type="P1", stock_length=6000),
            StockOption(profile_type="P1", stock_length=7300, priority=2),
        ]
        cost = compute_cost(pack_ffd(items, stock), CostModel(), WastePolicy())
        self.assertEqual(cost.setup_events, 2)


class TestQuality(unittest.TestCase):

    def test_grades(self):
        self.assertEqual(grade_for(0.95), QualityGrade.EXCELLENT)
        self.assertEqual(grade_for(0.90), QualityGrade.EXCELLENT)
        self.assertEqual(grade_for(0.85), QualityGrade.GOOD)
        self.assertEqual(grade_for(0.65), QualityGrade.AVERAGE)
        self.assertEqual(grade_for(0.5), QualityGrade.POOR)

    def test_score_combines_components(self):
        cuts = scenario_a_cuts()
        efficiency = 3000 / 3100
        quality = assess_quality(cuts, efficiency, QualityWeights())

        self.assertAlmostEqual(quality.distribution_score, 0.0)
        self.assertAlmostEqual(quality.constraint_score, 1.0)
        self.assertAlmostEqual(quality.score, 0.6 * efficiency + 0.15)
        self.assertEqual(quality.grade, QualityGrade.AVERAGE)
        self.assertEqual(quality.tolerance_limit_segments, 0)


class TestBreakdowns(unittest.TestCase):

    def test_work_order_allocation(self):
        items = [
            CutItem(id="a", profile_type="P1", length=1000, quantity=1, work_order_id="OP-1"),
            CutItem(id="b", profile_type="P1", length=500, quantity=2, work_order_id="OP-2"),
            CutItem(id="c", profile_type="P1", length=200, quantity=1),
        ]
        stock = [StockOption(profile_type="P1", stock_length=3000)]
        cuts = pack_ffd(items, stock, kerf_width=0)
        self.assertEqual(len(cuts), 1)

        breakdown = {row.work_order_id: row for row in work_order_breakdown(cuts)}
        self.assertEqual(set(breakdown), {"OP-1", "OP-2", "UNASSIGNED"})
        self.assertEqual(breakdown["OP-2"].piece_count, 2)
        self.assertAlmostEqual(sum(row.allocated_stock_length for row in breakdown.values()), 3000)
        self.assertAlmostEqual(breakdown["OP-1"].allocated_stock_length, 1000 / 2200 * 3000)

    def test_stock_summary_patterns(self):
        items = [CutItem(id="a", profile_type="P1", length=1000, quantity=6)]
        stock = [StockOption(profile_type="P1", stock_length=3100)]
        summary = stock_summary(pack_ffd(items, stock, kerf_width=5))
        self.assertEqual(len(summary), 1)
        self.assertEqual(summary[0].bar_count, 2)
        self.assertEqual(summary[0].patterns[0].pattern, "3x1000")
        self.assertEqual(summary[0].patterns[0].count, 2)


class TestRecommendations(unittest.TestCase):

    def test_rules_fire_for_poor_greedy_plan(self):
        items = [CutItem(id="a", profile_type="P1", length=1000, quantity=1, work_order_id="OP-1"),
                 CutItem(id="b", profile_type="P2", length=1000, quantity=1, work_order_id="OP-2")]
        stock = [StockOption(profile_type="P1", stock_length=3100),
                 StockOption(profile_type="P2", stock_length=3100)]
        cuts = pack_ffd(items, stock)
        config = FFDConfig()
        efficiency = 2000 / 6200
        quality = assess_quality(cuts, efficiency, config.quality_weights)

        recommendations = build_recommendations(cuts, AlgorithmMode.FFD, efficiency, quality, None, 2, config)
        types = {rec.type for rec in recommendations}

        self.assertTrue({"stock_length", "algorithm", "reclaim_offcuts", "pooling"} <= types)
        self.assertNotIn("time_budget", types)
        self.assertTrue(all(rec.potential_savings >= 0 for rec in recommendations))

    def test_recommendations_do_not_touch_cuts(self):
        cuts = scenario_a_cuts()
        before = [cut.model_dump() for cut in cuts]
        config = FFDConfig()
        quality = assess_quality(cuts, 0.5, config.quality_weights)
        build_recommendations(cuts, AlgorithmMode.FFD, 0.5, quality, None, 0, config)
        self.assertEqual(before, [cut.model_dump() for cut in cuts])


class TestResultAnalyzer(unittest.TestCase):

    def test_totals(self):
        cuts = scenario_a_cuts()
        telemetry = HeuristicTelemetry(strategy="ffd", unit_count=3, bins_opened=1)
        result = ResultAnalyzer(FFDConfig(kerf_width=5)).summarize(cuts, AlgorithmMode.FFD, telemetry, 1.0)

        self.assertEqual(result.bar_count, 1)
        self.assertAlmostEqual(result.total_stock_length, 3100)
        self.assertAlmostEqual(result.total_used_length, 3000)
        self.assertAlmostEqual(result.total_kerf_loss, 15)
        self.assertAlmostEqual(result.total_offcut, 85)
        self.assertAlmostEqual(result.total_waste, 100)
        self.assertAlmostEqual(result.waste_percentage, 100 / 3100 * 100)
        self.assertAlmostEqual(result.efficiency, 3000 / 3100)
        self.assertEqual(result.waste_distribution.small, 1)
        self.assertIsNone(result.convergence_reason)


if __name__ == '__main__':
    unittest.main()
