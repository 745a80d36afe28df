"""
Testes dos modelos de dados
"""

import unittest

from pydantic import ValidationError

from extrucut.models import (
    Cut, CutItem, FFDConfig, GeneticConfig, GeneticParameters, OptimizationRequest,
    PoolingConfig, Segment, StockOption, WasteCategory, WastePolicy,
)


class TestCutItem(unittest.TestCase):

    def test_tolerance_bounds(self):
        item = CutItem(id="a", profile_type="P1", length=1000, quantity=2, tolerance=2.5)
        self.assertEqual(item.min_length, 997.5)
        self.assertEqual(item.max_length, 1002.5)
        self.assertEqual(item.total_length, 2000)

    def test_rejects_non_positive_length_and_quantity(self):
        with self.assertRaises(ValidationError):
            CutItem(id="a", profile_type="P1", length=0, quantity=1)
        with self.assertRaises(ValidationError):
            CutItem(id="a", profile_type="P1", length=100, quantity=0)
        with self.assertRaises(ValidationError):
            CutItem(id="a", profile_type="P1", length=100, quantity=1, tolerance=-1)

    def test_is_immutable(self):
        item = CutItem(id="a", profile_type="P1", length=1000, quantity=1)
        with self.assertRaises(ValidationError):
            item.length = 10


class TestStockOption(unittest.TestCase):

    def test_usable_length_discounts_one_kerf(self):
        option = StockOption(profile_type="P1", stock_length=6000)
        self.assertEqual(option.usable_length(3.5), 5996.5)
        self.assertEqual(option.priority, 1)

    def test_rejects_non_positive_stock(self):
        with self.assertRaises(ValidationError):
            StockOption(profile_type="P1", stock_length=-1)


class TestPolicies(unittest.TestCase):

    def test_waste_policy_defaults(self):
        policy = WastePolicy()
        self.assertEqual((policy.minimal_below, policy.small_below, policy.medium_below, policy.large_up_to),
                         (50, 150, 300, 500))
        self.assertEqual(policy.reuse_floor, 300)

    def test_waste_policy_requires_increasing_bands(self):
        with self.assertRaises(ValidationError):
            WastePolicy(minimal_below=200, small_below=150)

    def test_genetic_parameters_validation(self):
        with self.assertRaises(ValidationError):
            GeneticParameters(population_size=0)
        with self.assertRaises(ValidationError):
            GeneticParameters(mutation_rate=1.5)

    def test_config_forbids_unknown_fields(self):
        with self.assertRaises(ValidationError):
            FFDConfig(kerf=3)


class TestOptimizationRequest(unittest.TestCase):

    def _payload(self, config):
        return {
            "items": [{"id": "a", "profile_type": "P1", "length": 1000, "quantity": 1}],
            "stock": [{"profile_type": "P1", "stock_length": 6000}],
            "config": config,
        }

    def test_config_is_selected_by_mode(self):
        request = OptimizationRequest.model_validate(
            self._payload({"mode": "genetic", "seed": 7, "genetic": {"max_generations": 5}})
        )
        self.assertIsInstance(request.config, GeneticConfig)
        self.assertEqual(request.config.genetic.max_generations, 5)
        self.assertEqual(request.config.seed, 7)

        request = OptimizationRequest.model_validate(self._payload({"mode": "pooling", "inner": "bfd"}))
        self.assertIsInstance(request.config, PoolingConfig)
        self.assertEqual(request.config.inner, "bfd")

    def test_default_config_is_ffd(self):
        payload = self._payload(None)
        del payload["config"]
        request = OptimizationRequest.model_validate(payload)
        self.assertIsInstance(request.config, FFDConfig)

    def test_unknown_mode_is_rejected(self):
        with self.assertRaises(ValidationError):
            OptimizationRequest.model_validate(self._payload({"mode": "simulated-annealing"}))

    def test_genetic_fields_only_on_genetic_modes(self):
        with self.assertRaises(ValidationError):
            OptimizationRequest.model_validate(self._payload({"mode": "ffd", "genetic": {}}))


class TestCut(unittest.TestCase):

    def setUp(self):
        self.item = CutItem(id="a", profile_type="P1", length=1200, quantity=2)
        other = CutItem(id="b", profile_type="P1", length=800, quantity=1)
        segments = [
            Segment(item=self.item, item_id="a", length=1200, position=0, end_position=1200, sequence_number=1),
            Segment(item=self.item, item_id="a", length=1200, position=1205, end_position=2405, sequence_number=2),
            Segment(item=other, item_id="b", length=800, position=2410, end_position=3210, sequence_number=3),
        ]
        self.cut = Cut(
            index=0, profile_type="P1", stock_length=4000, segments=segments, kerf_width=5,
            kerf_loss=15, used_length=3200, remaining_length=785,
            waste_category=WasteCategory.EXCESSIVE, is_reclaimable=True,
        )

    def test_derived_values(self):
        self.assertEqual(self.cut.segment_count, 3)
        self.assertAlmostEqual(self.cut.efficiency, 0.8)
        self.assertEqual(self.cut.pattern, "2x1200+1x800")

    def test_segment_keeps_item_identity_but_not_in_dump(self):
        self.assertIs(self.cut.segments[0].item, self.item)
        dumped = self.cut.model_dump()
        self.assertNotIn("item", dumped["segments"][0])
        self.assertEqual(dumped["segments"][0]["item_id"], "a")


if __name__ == '__main__':
    unittest.main()
