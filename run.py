#!/usr/bin/env python3
"""
Script principal para executar o motor ExtruCut
"""

import sys
import argparse
import json
from pathlib import Path

from pydantic import ValidationError

from extrucut import CuttingOptimizer, OptimizationError, OptimizationRequest
from extrucut.models import (
    BFDConfig, CutItem, FFDConfig, GeneticConfig, GeneticParameters, NSGA2Config,
    PoolingConfig, StockOption,
)
from extrucut.utils import create_visualization, export_result, setup_logging


def build_config(algorithm: str, seed=None, time_budget_ms=None):
    """Configuração padrão de cada estratégia"""
    common = {"seed": seed, "time_budget_ms": time_budget_ms}
    configs = {
        "ffd": lambda: FFDConfig(**common),
        "bfd": lambda: BFDConfig(**common),
        "genetic": lambda: GeneticConfig(genetic=GeneticParameters(max_generations=60), **common),
        "nsga-ii": lambda: NSGA2Config(genetic=GeneticParameters(max_generations=40), **common),
        "pooling": lambda: PoolingConfig(inner="bfd", **common),
    }
    return configs[algorithm]()


def create_sample_data():
    """Cria dados de exemplo: esquadrias de duas ordens de produção"""

    stock = [
        StockOption(profile_type="MONTANTE-45", stock_length=6000, is_default=True),
        StockOption(profile_type="MONTANTE-45", stock_length=6500, priority=2),
        StockOption(profile_type="TRAVESSA-30", stock_length=6000, is_default=True),
        StockOption(profile_type="TRAVESSA-30", stock_length=7300, priority=2, cost_per_unit=95.0),
        StockOption(profile_type="BAGUETE-12", stock_length=6000, is_default=True),
    ]

    items = [
        CutItem(id="montante-janela", name="Montante de janela", profile_type="MONTANTE-45",
                length=1450, quantity=8, tolerance=1.0, work_order_id="OP-1001"),
        CutItem(id="travessa-janela", name="Travessa de janela", profile_type="TRAVESSA-30",
                length=1180, quantity=8, work_order_id="OP-1001"),
        CutItem(id="baguete-vidro", name="Baguete do vidro", profile_type="BAGUETE-12",
                length=560, quantity=16, work_order_id="OP-1001"),
        CutItem(id="montante-porta", name="Montante de porta", profile_type="MONTANTE-45",
                length=2150, quantity=4, tolerance=1.5, work_order_id="OP-1002"),
        CutItem(id="travessa-porta", name="Travessa de porta", profile_type="TRAVESSA-30",
                length=860, quantity=6, work_order_id="OP-1002"),
        CutItem(id="baguete-porta", name="Baguete da porta", profile_type="BAGUETE-12",
                length=2080, quantity=4, work_order_id="OP-1002"),
    ]

    return items, stock


def print_summary(result):
    print(f"\n✅ Otimização concluída ({result.algorithm.value})")
    print(f"📦 Barras utilizadas: {result.bar_count}")
    print(f"📊 Aproveitamento: {result.efficiency:.1%}")
    print(f"🗑️  Desperdício: {result.total_waste:.1f}mm ({result.waste_percentage:.1f}%)")
    print(f"💰 Custo total: {result.cost.total_cost:.2f}")
    print(f"⭐ Qualidade: {result.quality.grade.value} ({result.quality.score:.2f})")
    if result.convergence_reason is not None:
        print(f"🧬 Parada: {result.convergence_reason.value} (semente {result.seed})")
    print(f"⚡ Tempo de processamento: {result.execution_time_ms:.1f}ms")

    print(f"\n📋 Padrões de corte:")
    for summary in result.stock_summary:
        print(f"  • {summary.profile_type} {summary.stock_length:g}mm: {summary.bar_count} barras")
        for pattern in summary.patterns[:3]:
            print(f"     {pattern.count}x [{pattern.pattern}]")

    reclaimable = [cut for cut in result.cuts if cut.is_reclaimable]
    if reclaimable:
        print(f"\n♻️  Retalhos reaproveitáveis: {len(reclaimable)}")
        for cut in reclaimable[:3]:
            print(f"     • {cut.remaining_length:.1f}mm ({cut.profile_type})")
        if len(reclaimable) > 3:
            print(f"     • ... e mais {len(reclaimable) - 3} retalhos")

    for rec in result.recommendations:
        print(f"💡 {rec.message}")


def run_demo(algorithm: str = "ffd", seed=None, time_budget_ms=None):
    """Executa demonstração do motor"""

    print("🔧 ExtruCut - Demonstração do Motor de Otimização")
    print("=" * 60)

    items, stock = create_sample_data()
    config = build_config(algorithm, seed, time_budget_ms)
    optimizer = CuttingOptimizer()

    print(f"✓ Estratégia: {algorithm}, espessura da lâmina: {config.kerf_width}mm")
    print(f"✓ {len(stock)} barras comerciais cadastradas")
    print(f"✓ {len(items)} tipos de peças em {len({i.work_order_id for i in items})} ordens de produção")

    print("\n🔄 Executando otimização...")
    result = optimizer.optimize(items, stock, config)
    print_summary(result)
    return result


def run_optimize(path: str):
    """Otimiza uma requisição lida de um arquivo JSON"""
    request = OptimizationRequest.model_validate_json(Path(path).read_text(encoding="utf-8"))
    print(f"🔄 Otimizando {len(request.items)} peças de {path} ({request.config.mode})...")
    result = CuttingOptimizer().optimize_request(request)
    print_summary(result)
    return result


def run_tests():
    """Executa os testes do motor"""

    print("🧪 Executando testes do ExtruCut...")

    import unittest

    loader = unittest.TestLoader()
    start_dir = Path(__file__).parent / 'tests'
    suite = loader.discover(str(start_dir), pattern='test_*.py', top_level_dir=str(Path(__file__).parent))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    if result.wasSuccessful():
        print("\n✅ Todos os testes passaram!")
        return True
    print(f"\n❌ {len(result.failures) + len(result.errors)} testes falharam")
    return False


def main():
    """Função principal"""

    parser = argparse.ArgumentParser(
        description="ExtruCut - Otimização de Cortes de Perfis de Alumínio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemplos de uso:
  python run.py demo                                 # Executa demonstração (FFD)
  python run.py demo --algorithm genetic --seed 42   # Algoritmo genético reprodutível
  python run.py optimize pedido.json                 # Otimiza requisição em JSON
  python run.py test                                 # Executa testes
  python run.py demo --export results                # Executa demo e exporta resultados
        """
    )

    parser.add_argument(
        'command',
        choices=['demo', 'optimize', 'test'],
        help='Comando a executar'
    )

    parser.add_argument(
        'input',
        nargs='?',
        help='Arquivo JSON com a requisição (comando optimize)'
    )

    parser.add_argument(
        '--algorithm',
        choices=['ffd', 'bfd', 'genetic', 'nsga-ii', 'pooling'],
        default='ffd',
        help='Estratégia da demonstração'
    )

    parser.add_argument('--seed', type=int, help='Semente para resultados reprodutíveis')

    parser.add_argument('--time-budget', type=float, metavar='MS', help='Tempo máximo de busca (ms)')

    parser.add_argument(
        '--export',
        metavar='DIR',
        help='Diretório para exportar resultados'
    )

    parser.add_argument(
        '--visualization',
        action='store_true',
        help='Criar visualizações dos resultados'
    )

    parser.add_argument(
        '--log-level',
        default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Nível de log'
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        if args.command == 'test':
            success = run_tests()
            sys.exit(0 if success else 1)

        if args.command == 'optimize':
            if not args.input:
                parser.error("o comando optimize exige o arquivo da requisição")
            result = run_optimize(args.input)
        else:
            result = run_demo(args.algorithm, args.seed, args.time_budget)

        if args.export:
            print(f"\n📁 Exportando resultados para: {args.export}")
            export_result(result, args.export)

            if args.visualization:
                print("🎨 Criando visualizações...")
                create_visualization(result, args.export)

            print("✅ Exportação concluída!")

    except OptimizationError as e:
        print(f"\n❌ Falha na otimização: {json.dumps(e.to_dict(), ensure_ascii=False)}")
        sys.exit(2)
    except ValidationError as e:
        print(f"\n❌ Requisição inválida:\n{e}")
        sys.exit(2)
    except KeyboardInterrupt:
        print("\n\n👋 Sistema interrompido pelo usuário")


if __name__ == "__main__":
    main()
