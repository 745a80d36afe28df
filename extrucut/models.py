"""
Modelos de dados para o motor de otimização de cortes de perfis de alumínio
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


UNASSIGNED_WORK_ORDER = "UNASSIGNED"


class AlgorithmMode(str, Enum):
    """Estratégias de otimização disponíveis"""
    FFD = "ffd"            # First Fit Decreasing
    BFD = "bfd"            # Best Fit Decreasing
    GENETIC = "genetic"    # Algoritmo genético mono-objetivo
    NSGA2 = "nsga-ii"      # Algoritmo genético multiobjetivo
    POOLING = "pooling"    # Consolidação de perfis entre ordens


class WasteCategory(str, Enum):
    """Faixas de sobra por barra"""
    MINIMAL = "minimal"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    EXCESSIVE = "excessive"


class ConvergenceReason(str, Enum):
    """Motivo de parada das buscas evolutivas"""
    MAX_GENERATIONS = "max_generations"
    FITNESS_PLATEAU = "fitness_plateau"
    TIME_BUDGET = "time_budget"


class QualityGrade(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ImplementationEffort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Entradas
# ---------------------------------------------------------------------------

class CutItem(BaseModel):
    """Representa uma peça a ser cortada de um perfil"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Identificador único da peça")
    profile_type: str = Field(..., min_length=1, description="Família do perfil/material")
    length: float = Field(..., gt=0, description="Comprimento nominal (mm)")
    quantity: int = Field(..., gt=0, description="Quantidade necessária")
    tolerance: float = Field(0.0, ge=0, description="Tolerância admitida para mais/menos (mm)")
    priority: Optional[int] = Field(None, ge=1, description="Prioridade de corte")
    name: Optional[str] = Field(None, description="Nome descritivo da peça")
    work_order_id: Optional[str] = Field(None, description="Ordem de produção de origem")

    @property
    def min_length(self) -> float:
        """Menor comprimento aceitável"""
        return self.length - self.tolerance

    @property
    def max_length(self) -> float:
        """Maior comprimento aceitável"""
        return self.length + self.tolerance

    @property
    def total_length(self) -> float:
        """Comprimento total necessário"""
        return self.length * self.quantity


class StockOption(BaseModel):
    """Representa uma barra comercial disponível para um perfil"""
    model_config = ConfigDict(frozen=True)

    profile_type: str = Field(..., min_length=1, description="Família do perfil/material")
    stock_length: float = Field(..., gt=0, description="Comprimento da barra (mm)")
    priority: int = Field(1, ge=1, description="Ordem de preferência (menor = preferida)")
    is_default: bool = Field(False, description="Barra padrão do perfil")
    cost_per_unit: Optional[float] = Field(None, ge=0, description="Custo de uma barra")

    def usable_length(self, kerf_width: float) -> float:
        """Comprimento aproveitável para uma única peça"""
        return self.stock_length - kerf_width


# ---------------------------------------------------------------------------
# Plano de corte
# ---------------------------------------------------------------------------

class Segment(BaseModel):
    """Uma peça posicionada dentro de uma barra"""
    model_config = ConfigDict(frozen=True)

    item: Optional[CutItem] = Field(None, exclude=True, repr=False,
                                    description="Peça de origem (mesma instância recebida)")
    item_id: str = Field(..., description="ID da peça de origem")
    work_order_id: Optional[str] = Field(None, description="Ordem de produção atribuída")
    length: float = Field(..., gt=0, description="Comprimento cortado (mm)")
    position: float = Field(..., ge=0, description="Início na barra (mm)")
    end_position: float = Field(..., description="Fim na barra (mm)")
    sequence_number: int = Field(..., ge=1, description="Ordem do corte na barra")
    at_tolerance_limit: bool = Field(False, description="Cortada abaixo do nominal, dentro da tolerância")


class Cut(BaseModel):
    """Uma barra consumida e seu layout de corte"""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Ordem de abertura da barra")
    profile_type: str
    stock_length: float = Field(..., gt=0)
    unit_cost: Optional[float] = Field(None, description="Custo da barra quando informado no estoque")
    segments: List[Segment]
    kerf_width: float = Field(..., ge=0)
    kerf_loss: float = Field(..., ge=0, description="Perda da lâmina (mm)")
    used_length: float = Field(..., ge=0, description="Soma das peças (mm)")
    remaining_length: float = Field(..., ge=0, description="Sobra da barra (mm)")
    waste_category: WasteCategory
    is_reclaimable: bool

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    @property
    def efficiency(self) -> float:
        """Aproveitamento da barra (0-1)"""
        return self.used_length / self.stock_length

    @property
    def pattern(self) -> str:
        """Padrão de corte, ex.: '2x1200+1x800'"""
        counts: Dict[float, int] = {}
        for segment in self.segments:
            counts[segment.length] = counts.get(segment.length, 0) + 1
        ordered = sorted(counts.items(), key=lambda kv: -kv[0])
        return "+".join(f"{count}x{length:g}" for length, count in ordered)


# ---------------------------------------------------------------------------
# Políticas e parâmetros
# ---------------------------------------------------------------------------

class WastePolicy(BaseModel):
    """Faixas de classificação de sobra e piso de reaproveitamento (mm)"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    minimal_below: float = Field(50.0, gt=0)
    small_below: float = Field(150.0, gt=0)
    medium_below: float = Field(300.0, gt=0)
    large_up_to: float = Field(500.0, gt=0)
    reuse_floor: float = Field(300.0, ge=0, description="Sobra mínima para voltar ao estoque")

    @model_validator(mode="after")
    def validate_order(self):
        if not (self.minimal_below < self.small_below < self.medium_below <= self.large_up_to):
            raise ValueError("Faixas de sobra devem ser crescentes")
        return self


class CostModel(BaseModel):
    """
    Tarifas unitárias do modelo de custo.

    Os valores padrão são apenas referências de ordem de grandeza; cada
    planta deve informar as suas próprias tarifas.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    material_cost_per_meter: float = Field(12.0, ge=0, description="Custo do perfil por metro de barra")
    labor_cost_per_hour: float = Field(45.0, ge=0, description="Mão de obra por hora de máquina")
    waste_cost_per_meter: float = Field(2.0, ge=0, description="Descarte por metro não reaproveitável")
    setup_cost: float = Field(15.0, ge=0, description="Custo por evento de setup")
    cutting_cost: float = Field(0.5, ge=0, description="Custo por corte")
    machine_cost_per_hour: float = Field(30.0, ge=0, description="Custo horário da serra")
    setup_minutes_per_bar: float = Field(1.0, ge=0, description="Carga/alinhamento de cada barra")
    cutting_minutes_per_cut: float = Field(0.5, ge=0, description="Tempo por corte")


class QualityWeights(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    efficiency: float = Field(0.6, ge=0)
    distribution: float = Field(0.25, ge=0)
    constraints: float = Field(0.15, ge=0)

    @model_validator(mode="after")
    def validate_total(self):
        if self.efficiency + self.distribution + self.constraints <= 0:
            raise ValueError("Ao menos um peso de qualidade deve ser positivo")
        return self


class RecommendationPolicy(BaseModel):
    """Limiares das recomendações pós-otimização"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    excessive_share_threshold: float = Field(0.10, ge=0, le=1)
    low_efficiency_threshold: float = Field(0.85, ge=0, le=1)


class FitnessWeights(BaseModel):
    """Pesos da função de aptidão do algoritmo genético (menor é melhor)"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    waste: float = Field(0.5, ge=0)
    bars: float = Field(0.3, ge=0)
    cost: float = Field(0.15, ge=0)
    reclaim: float = Field(0.05, ge=0, description="Bônus para sobras reaproveitáveis")


class ScalarizationWeights(BaseModel):
    """Pesos para escolher a solução recomendada na frente de Pareto"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    waste: float = Field(0.5, ge=0)
    cost: float = Field(0.3, ge=0)
    bars: float = Field(0.2, ge=0)


class GeneticParameters(BaseModel):
    """Parâmetros da busca evolutiva"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    population_size: Optional[int] = Field(None, ge=2, le=2000,
                                           description="Tamanho da população (padrão: 2x peças, entre 20 e 200)")
    max_generations: int = Field(100, ge=1)
    plateau_generations: int = Field(15, ge=1, description="Gerações sem melhora até parar")
    crossover_rate: float = Field(0.8, ge=0, le=1)
    mutation_rate: float = Field(0.15, ge=0, le=1)
    tournament_size: int = Field(3, ge=2)
    elite_count: Optional[int] = Field(None, ge=0, description="Indivíduos preservados por geração em cada ilha")
    island_size: int = Field(20, ge=2, description="Tamanho de cada ilha; populações maiores somam ilhas independentes")
    evaluation_workers: int = Field(1, ge=1, description="Threads para avaliar a população")
    fitness_weights: FitnessWeights = Field(default_factory=FitnessWeights)


class BaseAlgorithmConfig(BaseModel):
    """Parâmetros comuns a todas as estratégias"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    kerf_width: float = Field(3.5, ge=0, description="Espessura da lâmina (mm)")
    time_budget_ms: Optional[float] = Field(None, gt=0, description="Tempo máximo de busca (ms)")
    seed: Optional[int] = Field(None, ge=0, description="Semente para resultados reprodutíveis")
    allow_tolerance_fit: bool = Field(False, description="Permite cortar peças até o limite da tolerância")
    cost_model: CostModel = Field(default_factory=CostModel)
    waste_policy: WastePolicy = Field(default_factory=WastePolicy)
    quality_weights: QualityWeights = Field(default_factory=QualityWeights)
    recommendation_policy: RecommendationPolicy = Field(default_factory=RecommendationPolicy)


class FFDConfig(BaseAlgorithmConfig):
    mode: Literal["ffd"] = "ffd"


class BFDConfig(BaseAlgorithmConfig):
    mode: Literal["bfd"] = "bfd"


class GeneticConfig(BaseAlgorithmConfig):
    mode: Literal["genetic"] = "genetic"
    genetic: GeneticParameters = Field(default_factory=GeneticParameters)


class NSGA2Config(BaseAlgorithmConfig):
    mode: Literal["nsga-ii"] = "nsga-ii"
    genetic: GeneticParameters = Field(default_factory=GeneticParameters)
    scalarization: ScalarizationWeights = Field(default_factory=ScalarizationWeights)


class PoolingConfig(BaseAlgorithmConfig):
    mode: Literal["pooling"] = "pooling"
    inner: Literal["ffd", "bfd", "genetic"] = Field("ffd", description="Estratégia aplicada a cada pool")
    genetic: GeneticParameters = Field(default_factory=GeneticParameters)
    pool_workers: int = Field(1, ge=1, description="Threads para otimizar pools em paralelo")


AlgorithmConfig = Annotated[
    Union[FFDConfig, BFDConfig, GeneticConfig, NSGA2Config, PoolingConfig],
    Field(discriminator="mode"),
]


# ---------------------------------------------------------------------------
# Telemetria
# ---------------------------------------------------------------------------

class GenerationStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    generation: int
    best_fitness: float
    average_fitness: float
    diversity: float = Field(..., description="Fração de cromossomos distintos")


class HeuristicTelemetry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["heuristic"] = "heuristic"
    strategy: Literal["ffd", "bfd"]
    unit_count: int
    bins_opened: int


class GeneticTelemetry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["genetic"] = "genetic"
    generations: int
    population_size: int
    best_fitness: float
    convergence_reason: ConvergenceReason
    seed: int
    island_count: int = Field(1, description="Ilhas evoluídas em paralelo")
    evaluations: int = Field(..., description="Decodificações distintas avaliadas")
    history: List[GenerationStats] = Field(default_factory=list)


class ParetoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    waste: float
    cost: float
    bar_count: int
    crowding_distance: Optional[float] = None


class ParetoTelemetry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pareto"] = "pareto"
    generations: int
    population_size: int
    convergence_reason: ConvergenceReason
    seed: int
    front: List[ParetoPoint]
    front_size: int
    spacing: float
    recommended_index: int
    recommended_score: float
    best_fitness: float = Field(..., description="Aptidão escalar da solução recomendada")


class PoolSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile_type: str
    work_orders: List[str]
    unit_count: int
    bar_count: int
    mixed_bars: int = Field(..., description="Barras com peças de mais de uma ordem")
    unpooled_bar_count: int = Field(..., description="Barras se cada ordem fosse cortada isoladamente")

    @property
    def bars_saved(self) -> int:
        return self.unpooled_bar_count - self.bar_count


class PoolingTelemetry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pooling"] = "pooling"
    inner: Literal["ffd", "bfd", "genetic"]
    pools: List[PoolSummary]
    inner_telemetry: List[Annotated[Union[HeuristicTelemetry, GeneticTelemetry],
                                    Field(discriminator="kind")]] = Field(default_factory=list)


Telemetry = Annotated[
    Union[HeuristicTelemetry, GeneticTelemetry, ParetoTelemetry, PoolingTelemetry],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Resultado
# ---------------------------------------------------------------------------

class WasteDistribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    minimal: int = 0
    small: int = 0
    medium: int = 0
    large: int = 0
    excessive: int = 0
    reclaimable: int = 0
    total_cuts: int = 0
    average_remainder: float = 0.0


class CostBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    material_cost: float
    labor_cost: float
    waste_cost: float
    setup_cost: float
    cutting_cost: float
    time_cost: float
    total_cost: float
    cost_per_meter: float
    machine_minutes: float
    setup_events: int


class QualityAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=0, le=1)
    grade: QualityGrade
    efficiency_score: float
    distribution_score: float
    constraint_score: float
    tolerance_limit_segments: int


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    message: str
    potential_savings: float = 0.0
    implementation_effort: ImplementationEffort


class WorkOrderYield(BaseModel):
    model_config = ConfigDict(frozen=True)

    work_order_id: str
    piece_count: int
    used_length: float
    allocated_stock_length: float
    yield_ratio: float


class PatternCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str
    count: int


class StockSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile_type: str
    stock_length: float
    bar_count: int
    total_waste: float
    efficiency: float
    patterns: List[PatternCount]


class OptimizationResult(BaseModel):
    """Resultado completo da otimização"""
    model_config = ConfigDict(frozen=True)

    algorithm: AlgorithmMode = Field(..., description="Estratégia utilizada")
    cuts: List[Cut] = Field(..., description="Barras consumidas e seus cortes")
    bar_count: int = Field(..., description="Quantidade de barras utilizadas")
    total_stock_length: float
    total_used_length: float
    total_kerf_loss: float
    total_offcut: float = Field(..., description="Soma das sobras (mm)")
    total_waste: float = Field(..., description="Sobras + perda de lâmina (mm)")
    waste_percentage: float = Field(..., description="Desperdício percentual")
    efficiency: float = Field(..., description="Peças / comprimento de barras (0-1)")
    waste_distribution: WasteDistribution
    cost: CostBreakdown
    quality: QualityAssessment
    recommendations: List[Recommendation] = Field(default_factory=list)
    work_order_breakdown: List[WorkOrderYield] = Field(default_factory=list)
    stock_summary: List[StockSummary] = Field(default_factory=list)
    execution_time_ms: float = Field(..., description="Tempo de processamento (ms)")
    seed: Optional[int] = Field(None, description="Semente efetiva da execução")
    telemetry: Telemetry
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Metadados adicionais")

    @property
    def convergence_reason(self) -> Optional[ConvergenceReason]:
        if isinstance(self.telemetry, (GeneticTelemetry, ParetoTelemetry)):
            return self.telemetry.convergence_reason
        return None

    @property
    def pareto_front(self) -> Optional[List[ParetoPoint]]:
        if isinstance(self.telemetry, ParetoTelemetry):
            return self.telemetry.front
        return None


class OptimizationRequest(BaseModel):
    """Requisição de otimização"""
    items: List[CutItem] = Field(..., description="Peças a cortar")
    stock: List[StockOption] = Field(..., description="Catálogo de barras por perfil")
    config: AlgorithmConfig = Field(default_factory=FFDConfig, description="Estratégia e parâmetros")
