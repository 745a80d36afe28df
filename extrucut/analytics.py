"""
Análise de resultados: classificação de sobras, custos, qualidade e recomendações
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from .models import (
    AlgorithmMode, BaseAlgorithmConfig, ConvergenceReason, CostBreakdown, CostModel, Cut,
    ImplementationEffort, OptimizationResult, PatternCount, QualityAssessment, QualityGrade,
    QualityWeights, Recommendation, RecommendationPolicy, Severity, StockSummary,
    UNASSIGNED_WORK_ORDER, WasteCategory, WasteDistribution, WastePolicy, WorkOrderYield,
)

logger = logging.getLogger(__name__)

RECLAIMABLE_CATEGORIES = (WasteCategory.LARGE, WasteCategory.EXCESSIVE)


def categorize_waste(remaining_length: float, policy: WastePolicy) -> WasteCategory:
    """
    Classifica a sobra de uma barra

    Faixas padrão: < 50 mínima, [50, 150) pequena, [150, 300) média,
    [300, 500] grande, > 500 excessiva.
    """
    if remaining_length < policy.minimal_below:
        return WasteCategory.MINIMAL
    if remaining_length < policy.small_below:
        return WasteCategory.SMALL
    if remaining_length < policy.medium_below:
        return WasteCategory.MEDIUM
    if remaining_length <= policy.large_up_to:
        return WasteCategory.LARGE
    return WasteCategory.EXCESSIVE


def is_reclaimable(remaining_length: float, policy: WastePolicy) -> bool:
    """Sobra pode voltar ao estoque como matéria-prima"""
    return (remaining_length >= policy.reuse_floor
            and categorize_waste(remaining_length, policy) in RECLAIMABLE_CATEGORIES)


def waste_distribution(cuts: Sequence[Cut]) -> WasteDistribution:
    counts = Counter(cut.waste_category for cut in cuts)
    total_remainder = sum(cut.remaining_length for cut in cuts)
    return WasteDistribution(
        minimal=counts[WasteCategory.MINIMAL],
        small=counts[WasteCategory.SMALL],
        medium=counts[WasteCategory.MEDIUM],
        large=counts[WasteCategory.LARGE],
        excessive=counts[WasteCategory.EXCESSIVE],
        reclaimable=sum(1 for cut in cuts if cut.is_reclaimable),
        total_cuts=len(cuts),
        average_remainder=total_remainder / len(cuts) if cuts else 0.0,
    )


def _cost_components(bars: Sequence[Any], cost_model: CostModel, policy: WastePolicy) -> Dict[str, float]:
    # bars: qualquer objeto com profile_type, stock_length, unit_cost, used_length,
    # kerf_loss, remaining_length e segment_count (Cut ou barra aberta do decodificador)
    material = 0.0
    cut_count = 0
    unreclaimable = 0.0
    used = 0.0
    setups = set()
    for bar in bars:
        if bar.unit_cost is not None:
            material += bar.unit_cost
        else:
            material += bar.stock_length / 1000.0 * cost_model.material_cost_per_meter
        cut_count += bar.segment_count
        used += bar.used_length
        unreclaimable += bar.kerf_loss
        if not is_reclaimable(bar.remaining_length, policy):
            unreclaimable += bar.remaining_length
        setups.add((bar.profile_type, bar.stock_length))

    machine_minutes = (len(bars) * cost_model.setup_minutes_per_bar
                       + cut_count * cost_model.cutting_minutes_per_cut)
    hours = machine_minutes / 60.0
    components = {
        "material_cost": material,
        "labor_cost": hours * cost_model.labor_cost_per_hour,
        "waste_cost": unreclaimable / 1000.0 * cost_model.waste_cost_per_meter,
        "setup_cost": len(setups) * cost_model.setup_cost,
        "cutting_cost": cut_count * cost_model.cutting_cost,
        "time_cost": hours * cost_model.machine_cost_per_hour,
    }
    components["total_cost"] = sum(components.values())
    components["machine_minutes"] = machine_minutes
    components["setup_events"] = len(setups)
    components["usable_meters"] = used / 1000.0
    return components


def estimate_total_cost(bars: Sequence[Any], cost_model: CostModel, policy: WastePolicy) -> float:
    """Custo total sem montar o detalhamento (usado na aptidão)"""
    return _cost_components(bars, cost_model, policy)["total_cost"]


def compute_cost(bars: Sequence[Any], cost_model: CostModel, policy: WastePolicy) -> CostBreakdown:
    """
    Calcula o custo detalhado de um plano

    Args:
        bars: Barras do plano
        cost_model: Tarifas unitárias
        policy: Política de sobras (define o que é descarte)

    Returns:
        Custo por componente, total e custo por metro útil
    """
    c = _cost_components(bars, cost_model, policy)
    usable = c["usable_meters"]
    return CostBreakdown(
        material_cost=c["material_cost"],
        labor_cost=c["labor_cost"],
        waste_cost=c["waste_cost"],
        setup_cost=c["setup_cost"],
        cutting_cost=c["cutting_cost"],
        time_cost=c["time_cost"],
        total_cost=c["total_cost"],
        cost_per_meter=c["total_cost"] / usable if usable > 0 else 0.0,
        machine_minutes=c["machine_minutes"],
        setup_events=int(c["setup_events"]),
    )


def grade_for(score: float) -> QualityGrade:
    if score >= 0.90:
        return QualityGrade.EXCELLENT
    if score >= 0.80:
        return QualityGrade.GOOD
    if score >= 0.65:
        return QualityGrade.AVERAGE
    return QualityGrade.POOR


def assess_quality(cuts: Sequence[Cut], efficiency: float, weights: QualityWeights) -> QualityAssessment:
    """
    Nota de qualidade em [0, 1]

    Combina aproveitamento, distribuição da sobra (fração da sobra que é
    mínima ou reaproveitável) e pressão de restrições (peças cortadas no
    limite da tolerância).
    """
    total_offcut = sum(cut.remaining_length for cut in cuts)
    useful_offcut = sum(
        cut.remaining_length for cut in cuts
        if cut.is_reclaimable or cut.waste_category == WasteCategory.MINIMAL
    )
    distribution_score = useful_offcut / total_offcut if total_offcut > 0 else 1.0

    segments = [segment for cut in cuts for segment in cut.segments]
    at_limit = sum(1 for segment in segments if segment.at_tolerance_limit)
    constraint_score = 1.0 - at_limit / len(segments) if segments else 1.0

    total_weight = weights.efficiency + weights.distribution + weights.constraints
    score = (weights.efficiency * efficiency
             + weights.distribution * distribution_score
             + weights.constraints * constraint_score) / total_weight
    score = max(0.0, min(1.0, score))

    return QualityAssessment(
        score=score,
        grade=grade_for(score),
        efficiency_score=efficiency,
        distribution_score=distribution_score,
        constraint_score=constraint_score,
        tolerance_limit_segments=at_limit,
    )


def work_order_breakdown(cuts: Sequence[Cut]) -> List[WorkOrderYield]:
    """Reatribui peças e barras às ordens de produção de origem"""
    pieces: Dict[str, int] = {}
    used: Dict[str, float] = {}
    allocated: Dict[str, float] = {}

    for cut in cuts:
        for segment in cut.segments:
            order = segment.work_order_id or UNASSIGNED_WORK_ORDER
            share = segment.length / cut.used_length if cut.used_length > 0 else 0.0
            pieces[order] = pieces.get(order, 0) + 1
            used[order] = used.get(order, 0.0) + segment.length
            allocated[order] = allocated.get(order, 0.0) + share * cut.stock_length

    return [
        WorkOrderYield(
            work_order_id=order,
            piece_count=pieces[order],
            used_length=used[order],
            allocated_stock_length=allocated[order],
            yield_ratio=used[order] / allocated[order] if allocated[order] > 0 else 0.0,
        )
        for order in sorted(pieces)
    ]


def stock_summary(cuts: Sequence[Cut]) -> List[StockSummary]:
    groups: Dict[tuple, List[Cut]] = {}
    for cut in cuts:
        groups.setdefault((cut.profile_type, cut.stock_length), []).append(cut)

    summaries = []
    for (profile_type, stock_length), group in groups.items():
        patterns = Counter(cut.pattern for cut in group)
        total_stock = stock_length * len(group)
        summaries.append(StockSummary(
            profile_type=profile_type,
            stock_length=stock_length,
            bar_count=len(group),
            total_waste=sum(cut.remaining_length + cut.kerf_loss for cut in group),
            efficiency=sum(cut.used_length for cut in group) / total_stock,
            patterns=[PatternCount(pattern=p, count=n)
                      for p, n in sorted(patterns.items(), key=lambda kv: (-kv[1], kv[0]))],
        ))
    return summaries


def build_recommendations(
    cuts: Sequence[Cut],
    algorithm: AlgorithmMode,
    efficiency: float,
    quality: QualityAssessment,
    convergence_reason: Optional[ConvergenceReason],
    work_order_count: int,
    config: BaseAlgorithmConfig,
) -> List[Recommendation]:
    """
    Recomendações baseadas em regras; apenas consultivas, nunca alteram o plano
    """
    policy: RecommendationPolicy = config.recommendation_policy
    waste_policy = config.waste_policy
    rate = config.cost_model.material_cost_per_meter
    recommendations: List[Recommendation] = []
    if not cuts:
        return recommendations

    excessive = [cut for cut in cuts if cut.waste_category == WasteCategory.EXCESSIVE]
    share = len(excessive) / len(cuts)
    if share > policy.excessive_share_threshold:
        profiles = sorted({cut.profile_type for cut in excessive})
        surplus = sum(cut.remaining_length - waste_policy.large_up_to for cut in excessive)
        recommendations.append(Recommendation(
            type="stock_length",
            severity=Severity.WARNING,
            message=(f"{share:.0%} das barras terminam com sobra excessiva; considere uma barra "
                     f"comercial alternativa para: {', '.join(profiles)}"),
            potential_savings=surplus / 1000.0 * rate,
            implementation_effort=ImplementationEffort.MEDIUM,
        ))

    greedy = algorithm in (AlgorithmMode.FFD, AlgorithmMode.BFD, AlgorithmMode.POOLING)
    if greedy and efficiency < policy.low_efficiency_threshold:
        total_stock = sum(cut.stock_length for cut in cuts)
        gap = policy.low_efficiency_threshold - efficiency
        recommendations.append(Recommendation(
            type="algorithm",
            severity=Severity.INFO,
            message=f"Aproveitamento de {efficiency:.1%}; experimente a estratégia genética",
            potential_savings=gap * total_stock / 1000.0 * rate,
            implementation_effort=ImplementationEffort.LOW,
        ))

    reclaimable = [cut for cut in cuts if cut.is_reclaimable]
    if reclaimable:
        length = sum(cut.remaining_length for cut in reclaimable)
        recommendations.append(Recommendation(
            type="reclaim_offcuts",
            severity=Severity.INFO,
            message=f"{len(reclaimable)} retalhos (total {length:.0f} mm) podem voltar ao estoque",
            potential_savings=length / 1000.0 * rate,
            implementation_effort=ImplementationEffort.LOW,
        ))

    if convergence_reason == ConvergenceReason.TIME_BUDGET:
        recommendations.append(Recommendation(
            type="time_budget",
            severity=Severity.WARNING,
            message="Busca interrompida pelo limite de tempo; aumente o orçamento para um plano melhor",
            implementation_effort=ImplementationEffort.LOW,
        ))

    if work_order_count > 1 and algorithm != AlgorithmMode.POOLING:
        recommendations.append(Recommendation(
            type="pooling",
            severity=Severity.INFO,
            message=f"{work_order_count} ordens de produção; o agrupamento por perfil pode reduzir barras",
            implementation_effort=ImplementationEffort.LOW,
        ))

    if quality.tolerance_limit_segments:
        recommendations.append(Recommendation(
            type="tolerance",
            severity=Severity.WARNING,
            message=f"{quality.tolerance_limit_segments} peças cortadas no limite da tolerância",
            implementation_effort=ImplementationEffort.MEDIUM,
        ))

    return recommendations


class ResultAnalyzer:
    """Monta o OptimizationResult a partir das barras de uma estratégia"""

    def __init__(self, config: BaseAlgorithmConfig):
        self.config = config

    def summarize(
        self,
        cuts: Sequence[Cut],
        algorithm: AlgorithmMode,
        telemetry: Any,
        execution_time_ms: float,
        work_order_count: int = 0,
        seed: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OptimizationResult:
        total_stock = sum(cut.stock_length for cut in cuts)
        total_used = sum(cut.used_length for cut in cuts)
        total_kerf = sum(cut.kerf_loss for cut in cuts)
        total_offcut = sum(cut.remaining_length for cut in cuts)
        total_waste = total_stock - total_used
        efficiency = total_used / total_stock if total_stock > 0 else 0.0

        quality = assess_quality(cuts, efficiency, self.config.quality_weights)
        convergence_reason = getattr(telemetry, "convergence_reason", None)
        recommendations = build_recommendations(
            cuts, algorithm, efficiency, quality, convergence_reason, work_order_count, self.config
        )

        logger.info(f"Resultado {algorithm.value}: {len(cuts)} barras, aproveitamento {efficiency:.1%}, "
                    f"qualidade {quality.grade.value}")

        return OptimizationResult(
            algorithm=algorithm,
            cuts=list(cuts),
            bar_count=len(cuts),
            total_stock_length=total_stock,
            total_used_length=total_used,
            total_kerf_loss=total_kerf,
            total_offcut=total_offcut,
            total_waste=total_waste,
            waste_percentage=total_waste / total_stock * 100 if total_stock > 0 else 0.0,
            efficiency=efficiency,
            waste_distribution=waste_distribution(cuts),
            cost=compute_cost(cuts, self.config.cost_model, self.config.waste_policy),
            quality=quality,
            recommendations=recommendations,
            work_order_breakdown=work_order_breakdown(cuts),
            stock_summary=stock_summary(cuts),
            execution_time_ms=execution_time_ms,
            seed=seed,
            telemetry=telemetry,
            metadata=metadata or {},
        )
