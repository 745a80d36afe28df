"""
Utilitários para relatórios, visualização e logging do ExtruCut
"""

import logging
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle
import numpy as np
import pandas as pd

from .models import OptimizationResult, ParetoTelemetry, PoolingTelemetry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configura o logging da aplicação"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT, force=True)
    logging.getLogger("matplotlib").setLevel(logging.WARNING)


def _finish(fig, save_path: Optional[str], show: bool) -> None:
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    if show:
        plt.show()
    else:
        plt.close(fig)


class OptimizationVisualizer:
    """Visualização dos planos de corte"""

    def __init__(self, result: OptimizationResult):
        self.result = result
        self.colors = plt.cm.Set3(np.linspace(0, 1, 12))

    def plot_cuts(self, save_path: Optional[str] = None, show: bool = True, max_bars: int = 30) -> None:
        """
        Desenha o layout de cada barra (peças, perda de lâmina e sobra)

        Args:
            save_path: Arquivo de imagem de saída
            show: Exibe a figura
            max_bars: Limite de barras desenhadas
        """
        cuts = self.result.cuts[:max_bars]
        if not cuts:
            logger.warning("Nenhuma barra para visualizar")
            return

        fig, ax = plt.subplots(figsize=(14, 0.6 * len(cuts) + 1.5))
        for row, cut in enumerate(cuts):
            y = len(cuts) - row - 1
            ax.add_patch(Rectangle((0, y - 0.35), cut.stock_length, 0.7,
                                   facecolor="whitesmoke", edgecolor="black", linewidth=1))
            for j, segment in enumerate(cut.segments):
                ax.add_patch(Rectangle((segment.position, y - 0.3), segment.length, 0.6,
                                       facecolor=self.colors[j % len(self.colors)], edgecolor="black",
                                       hatch="//" if segment.at_tolerance_limit else None))
                ax.text(segment.position + segment.length / 2, y, f"{segment.item_id}\n{segment.length:g}",
                        ha="center", va="center", fontsize=6)
            if cut.remaining_length > 0:
                start = cut.stock_length - cut.remaining_length
                ax.add_patch(Rectangle((start, y - 0.3), cut.remaining_length, 0.6,
                                       facecolor="salmon" if not cut.is_reclaimable else "palegreen", alpha=0.6))
            ax.text(cut.stock_length * 1.01, y, f"{cut.efficiency:.1%}", va="center", fontsize=7)

        ax.set_xlim(0, max(cut.stock_length for cut in cuts) * 1.08)
        ax.set_ylim(-0.6, len(cuts) - 0.4)
        ax.set_yticks(range(len(cuts)))
        ax.set_yticklabels([f"#{cut.index} {cut.profile_type}" for cut in reversed(cuts)], fontsize=7)
        ax.set_xlabel("Posição (mm)")
        ax.set_title(f"Plano de corte ({self.result.algorithm.value}): {self.result.bar_count} barras")
        _finish(fig, save_path, show)

    def plot_pareto_front(self, save_path: Optional[str] = None, show: bool = True) -> None:
        """Frente de Pareto (desperdício x custo, cor = número de barras)"""
        telemetry = self.result.telemetry
        if not isinstance(telemetry, ParetoTelemetry):
            logger.warning("Resultado sem frente de Pareto")
            return

        waste = [p.waste for p in telemetry.front]
        cost = [p.cost for p in telemetry.front]
        bars = [p.bar_count for p in telemetry.front]

        fig, ax = plt.subplots(figsize=(8, 6))
        scatter = ax.scatter(waste, cost, c=bars, cmap="viridis", s=60, edgecolor="black")
        chosen = telemetry.front[telemetry.recommended_index]
        ax.scatter([chosen.waste], [chosen.cost], marker="*", s=300, color="red", label="Recomendada")
        fig.colorbar(scatter, ax=ax, label="Barras")
        ax.set_xlabel("Desperdício (mm)")
        ax.set_ylabel("Custo")
        ax.set_title(f"Frente de Pareto ({telemetry.front_size} soluções)")
        ax.grid(True, alpha=0.3)
        ax.legend()
        _finish(fig, save_path, show)

    def create_summary_chart(self, save_path: Optional[str] = None, show: bool = True) -> None:
        """Cria gráfico de resumo da otimização"""
        result = self.result
        fig, ((ax1, ax2), (ax3, ax4)) = plt.subplots(2, 2, figsize=(15, 10))

        # Aproveitamento por barra
        efficiencies = [cut.efficiency * 100 for cut in result.cuts]
        ax1.bar(range(len(efficiencies)), efficiencies, color="skyblue", edgecolor="navy")
        ax1.axhline(result.efficiency * 100, color="red", linestyle="--", label="Média")
        ax1.set_title("Aproveitamento por Barra")
        ax1.set_xlabel("Barra")
        ax1.set_ylabel("Aproveitamento (%)")
        ax1.set_ylim(0, 100)
        ax1.legend()

        # Distribuição das sobras
        distribution = result.waste_distribution
        labels = ["mínima", "pequena", "média", "grande", "excessiva"]
        counts = [distribution.minimal, distribution.small, distribution.medium,
                  distribution.large, distribution.excessive]
        ax2.bar(labels, counts, color=["green", "yellowgreen", "gold", "orange", "red"])
        ax2.set_title("Distribuição das Sobras")
        ax2.set_ylabel("Barras")

        # Composição do custo
        cost = result.cost
        parts = {
            "Material": cost.material_cost,
            "Mão de obra": cost.labor_cost,
            "Descarte": cost.waste_cost,
            "Setup": cost.setup_cost,
            "Corte": cost.cutting_cost,
            "Máquina": cost.time_cost,
        }
        ax3.barh(list(parts), list(parts.values()), color="steelblue")
        ax3.set_title("Composição do Custo")
        ax3.set_xlabel("Custo")

        # Resumo geral
        ax4.axis("off")
        summary_text = f"""
        RESUMO DA OTIMIZAÇÃO

        Estratégia: {result.algorithm.value}
        Barras: {result.bar_count}
        Aproveitamento: {result.efficiency:.1%}
        Desperdício: {result.total_waste:.1f} mm ({result.waste_percentage:.1f}%)
        Custo Total: {cost.total_cost:.2f}
        Qualidade: {result.quality.grade.value} ({result.quality.score:.2f})
        Tempo: {result.execution_time_ms:.1f} ms
        """
        ax4.text(0.1, 0.9, summary_text, transform=ax4.transAxes, fontsize=12,
                 verticalalignment="top", fontfamily="monospace",
                 bbox=dict(boxstyle="round,pad=0.5", facecolor="lightblue", alpha=0.8))

        _finish(fig, save_path, show)


class OptimizationReporter:
    """Geração de relatórios"""

    def __init__(self, result: OptimizationResult):
        self.result = result

    def generate_text_report(self) -> str:
        """Gera relatório em formato texto"""
        result = self.result
        report = []
        report.append("=" * 60)
        report.append("RELATÓRIO DE OTIMIZAÇÃO DE CORTES")
        report.append("=" * 60)
        report.append("")

        report.append("RESUMO GERAL:")
        report.append(f"  • Estratégia: {result.algorithm.value}")
        report.append(f"  • Barras utilizadas: {result.bar_count}")
        report.append(f"  • Aproveitamento: {result.efficiency:.1%}")
        report.append(f"  • Desperdício: {result.total_waste:.1f} mm ({result.waste_percentage:.1f}%)")
        report.append(f"  • Perda de lâmina: {result.total_kerf_loss:.1f} mm")
        report.append(f"  • Custo total: {result.cost.total_cost:.2f} ({result.cost.cost_per_meter:.2f}/m)")
        report.append(f"  • Qualidade: {result.quality.grade.value} ({result.quality.score:.2f})")
        if result.seed is not None:
            report.append(f"  • Semente: {result.seed}")
        if result.convergence_reason is not None:
            report.append(f"  • Parada: {result.convergence_reason.value}")
        report.append(f"  • Tempo de processamento: {result.execution_time_ms:.1f} ms")
        report.append("")

        report.append("BARRAS:")
        report.append("-" * 40)
        for cut in result.cuts:
            report.append(f"\n{cut.index + 1}. {cut.profile_type} {cut.stock_length:g} mm "
                          f"[{cut.pattern}] sobra {cut.remaining_length:.1f} mm ({cut.waste_category.value})")
            for segment in cut.segments:
                order = f" OP {segment.work_order_id}" if segment.work_order_id else ""
                limit = " (limite de tolerância)" if segment.at_tolerance_limit else ""
                report.append(f"     {segment.sequence_number}. {segment.item_id}{order}: "
                              f"{segment.length:g} mm (pos: {segment.position:g} mm){limit}")

        if result.work_order_breakdown:
            report.append("\nORDENS DE PRODUÇÃO:")
            report.append("-" * 30)
            for order in result.work_order_breakdown:
                report.append(f"  • {order.work_order_id}: {order.piece_count} peças, "
                              f"rendimento {order.yield_ratio:.1%}")

        if isinstance(result.telemetry, PoolingTelemetry):
            report.append("\nPOOLS POR PERFIL:")
            report.append("-" * 30)
            for pool in result.telemetry.pools:
                report.append(f"  • {pool.profile_type}: {pool.bar_count} barras "
                              f"({pool.bars_saved} economizadas, {pool.mixed_bars} mistas)")

        if result.recommendations:
            report.append("\nRECOMENDAÇÕES:")
            report.append("-" * 25)
            for i, rec in enumerate(result.recommendations, 1):
                report.append(f"  {i}. [{rec.severity.value}] {rec.message}")

        report.append("\n" + "=" * 60)
        return "\n".join(report)

    def cuts_frame(self) -> pd.DataFrame:
        rows = [
            {
                "Barra": cut.index,
                "Perfil": cut.profile_type,
                "Comprimento_Barra": cut.stock_length,
                "Peça": segment.item_id,
                "Ordem_Produção": segment.work_order_id,
                "Sequência": segment.sequence_number,
                "Comprimento": segment.length,
                "Posição": segment.position,
                "Limite_Tolerância": segment.at_tolerance_limit,
            }
            for cut in self.result.cuts
            for segment in cut.segments
        ]
        return pd.DataFrame(rows)

    def stock_frame(self) -> pd.DataFrame:
        return pd.DataFrame([
            {
                "Perfil": summary.profile_type,
                "Comprimento_Barra": summary.stock_length,
                "Barras": summary.bar_count,
                "Desperdício": summary.total_waste,
                "Aproveitamento": summary.efficiency,
                "Padrões": "; ".join(f"{p.count}x [{p.pattern}]" for p in summary.patterns),
            }
            for summary in self.result.stock_summary
        ])

    def work_order_frame(self) -> pd.DataFrame:
        return pd.DataFrame([order.model_dump() for order in self.result.work_order_breakdown])

    def generate_csv_report(self, file_path: str) -> None:
        """Gera relatório em formato CSV (cortes, barras e ordens)"""
        self.cuts_frame().to_csv(f"{file_path}_cortes.csv", index=False, encoding="utf-8")
        self.stock_frame().to_csv(f"{file_path}_barras.csv", index=False, encoding="utf-8")
        self.work_order_frame().to_csv(f"{file_path}_ordens.csv", index=False, encoding="utf-8")

    def generate_json_report(self, file_path: str) -> None:
        """Gera relatório em formato JSON"""
        Path(file_path).write_text(self.result.model_dump_json(indent=2), encoding="utf-8")


def export_result(result: OptimizationResult, output_dir: str, formats: Optional[List[str]] = None) -> None:
    """
    Exporta resultado em múltiplos formatos

    Args:
        result: Resultado da otimização
        output_dir: Diretório de saída
        formats: Lista de formatos (txt, csv, json)
    """
    if formats is None:
        formats = ["txt", "csv", "json"]

    Path(output_dir).mkdir(parents=True, exist_ok=True)

    reporter = OptimizationReporter(result)
    base_path = Path(output_dir) / "relatorio_extrucut"

    if "txt" in formats:
        Path(f"{base_path}.txt").write_text(reporter.generate_text_report(), encoding="utf-8")

    if "csv" in formats:
        reporter.generate_csv_report(str(base_path))

    if "json" in formats:
        reporter.generate_json_report(f"{base_path}.json")

    logger.info(f"Relatórios exportados para: {output_dir}")


def create_visualization(result: OptimizationResult, output_dir: str, show: bool = False) -> None:
    """
    Cria visualizações do resultado

    Args:
        result: Resultado da otimização
        output_dir: Diretório de saída
        show: Se deve mostrar os gráficos
    """
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    visualizer = OptimizationVisualizer(result)
    base_path = Path(output_dir) / "visualizacao_extrucut"

    visualizer.plot_cuts(f"{base_path}_barras.png", show=show)
    if result.pareto_front is not None:
        visualizer.plot_pareto_front(f"{base_path}_pareto.png", show=show)
    visualizer.create_summary_chart(f"{base_path}_resumo.png", show=show)

    logger.info(f"Visualizações salvas em: {output_dir}")
