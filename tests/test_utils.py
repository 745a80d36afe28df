"""
Testes de relatórios e visualização
"""

import json
import tempfile
import unittest
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import pandas as pd

from extrucut.core import CuttingOptimizer
from extrucut.models import CutItem, GeneticParameters, NSGA2Config, PoolingConfig, StockOption
from extrucut.utils import OptimizationReporter, create_visualization, export_result


def sample_result(config=None):
    items = [
        CutItem(id="montante", profile_type="M45", length=1450, quantity=4, work_order_id="OP-1"),
        CutItem(id="travessa", profile_type="M45", length=980, quantity=5, work_order_id="OP-2"),
    ]
    stock = [StockOption(profile_type="M45", stock_length=6000)]
    return CuttingOptimizer().optimize(items, stock, config or PoolingConfig())


class TestReporter(unittest.TestCase):

    def setUp(self):
        self.result = sample_result()
        self.reporter = OptimizationReporter(self.result)

    def test_text_report(self):
        report = self.reporter.generate_text_report()
        self.assertIn("RELATÓRIO DE OTIMIZAÇÃO DE CORTES", report)
        self.assertIn("pooling", report)
        self.assertIn("OP-1", report)
        self.assertIn("POOLS POR PERFIL", report)

    def test_cuts_frame(self):
        frame = self.reporter.cuts_frame()
        self.assertIsInstance(frame, pd.DataFrame)
        self.assertEqual(len(frame), 9)
        self.assertEqual(set(frame["Ordem_Produção"]), {"OP-1", "OP-2"})

    def test_export(self):
        with tempfile.TemporaryDirectory() as output_dir:
            export_result(self.result, output_dir)
            base = Path(output_dir) / "relatorio_extrucut"

            self.assertTrue(Path(f"{base}.txt").exists())
            for suffix in ("cortes", "barras", "ordens"):
                self.assertTrue(Path(f"{base}_{suffix}.csv").exists())

            data = json.loads(Path(f"{base}.json").read_text(encoding="utf-8"))
            self.assertEqual(data["algorithm"], "pooling")
            self.assertEqual(data["telemetry"]["kind"], "pooling")
            self.assertNotIn("item", data["cuts"][0]["segments"][0])

            orders = pd.read_csv(f"{base}_ordens.csv")
            self.assertEqual(sorted(orders["work_order_id"]), ["OP-1", "OP-2"])


class TestVisualization(unittest.TestCase):

    def test_images_are_written(self):
        result = sample_result(NSGA2Config(seed=1, genetic=GeneticParameters(population_size=20, max_generations=3)))
        with tempfile.TemporaryDirectory() as output_dir:
            create_visualization(result, output_dir)
            base = Path(output_dir) / "visualizacao_extrucut"
            for suffix in ("barras", "pareto", "resumo"):
                self.assertTrue(Path(f"{base}_{suffix}.png").exists())


if __name__ == '__main__':
    unittest.main()
