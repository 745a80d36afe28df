"""
Heurísticas gulosas de empacotamento 1D (FFD e BFD) e decodificador de sequências
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .analytics import categorize_waste, is_reclaimable
from .errors import ItemTooLongError, MissingStockOptionError
from .models import Cut, CutItem, HeuristicTelemetry, Segment, StockOption, WastePolicy

logger = logging.getLogger(__name__)

EPSILON = 1e-9
FIRST_FIT = "first"
BEST_FIT = "best"


@dataclass(frozen=True)
class UnitRequest:
    """Uma unidade de uma peça; mantém referência à peça original"""
    item: CutItem
    ordinal: int     # posição da peça na entrada
    unit: int        # n-ésima unidade da peça

    @property
    def length(self) -> float:
        return self.item.length

    @property
    def profile_type(self) -> str:
        return self.item.profile_type


def expand_requests(items: Sequence[CutItem]) -> List[UnitRequest]:
    """Expande cada peça em `quantity` requisições unitárias, na ordem de entrada"""
    return [
        UnitRequest(item=item, ordinal=ordinal, unit=unit)
        for ordinal, item in enumerate(items)
        for unit in range(item.quantity)
    ]


def decreasing_order(requests: Iterable[UnitRequest]) -> List[UnitRequest]:
    """Maior primeiro; empates resolvidos pela ordem de entrada"""
    return sorted(requests, key=lambda r: (-r.length, r.ordinal, r.unit))


def build_catalog(stock: Iterable[StockOption]) -> Dict[str, List[StockOption]]:
    """Agrupa as barras por perfil, em ordem de preferência (prioridade, barra padrão, comprimento)"""
    catalog: Dict[str, List[StockOption]] = {}
    for option in stock:
        catalog.setdefault(option.profile_type, []).append(option)
    for options in catalog.values():
        options.sort(key=lambda o: (o.priority, not o.is_default, o.stock_length))
    return catalog


def check_coverage(
    items: Sequence[CutItem],
    catalog: Dict[str, List[StockOption]],
    kerf_width: float,
    allow_tolerance_fit: bool = False,
) -> None:
    """
    Garante que toda peça tem ao menos uma barra capaz de contê-la

    Raises:
        MissingStockOptionError: perfil sem nenhuma barra cadastrada
        ItemTooLongError: peças maiores que todas as barras do seu perfil
    """
    missing = [item.profile_type for item in items if not catalog.get(item.profile_type)]
    if missing:
        raise MissingStockOptionError(missing)

    too_long = []
    for item in items:
        needed = item.min_length if allow_tolerance_fit else item.length
        if all(option.usable_length(kerf_width) < needed - EPSILON for option in catalog[item.profile_type]):
            too_long.append(item.id)
    if too_long:
        raise ItemTooLongError(too_long)


@dataclass
class OpenBin:
    """Barra aberta dentro da arena; mutável apenas durante a decodificação"""
    index: int
    stock: StockOption
    kerf_width: float
    placements: List[Tuple[UnitRequest, float, bool]] = field(default_factory=list)
    used_length: float = 0.0

    @property
    def profile_type(self) -> str:
        return self.stock.profile_type

    @property
    def stock_length(self) -> float:
        return self.stock.stock_length

    @property
    def unit_cost(self) -> Optional[float]:
        return self.stock.cost_per_unit

    @property
    def segment_count(self) -> int:
        return len(self.placements)

    @property
    def kerf_loss(self) -> float:
        return self.kerf_width * len(self.placements)

    @property
    def remaining_length(self) -> float:
        return self.stock.stock_length - self.used_length - self.kerf_loss

    def fits(self, length: float) -> bool:
        return self.remaining_length >= length + self.kerf_width - EPSILON

    def add(self, request: UnitRequest, length: float, at_limit: bool = False) -> None:
        self.placements.append((request, length, at_limit))
        self.used_length += length


class CutArena:
    """
    Conjunto de barras abertas de uma única decodificação

    As barras são endereçadas por índice de criação e nunca compartilhadas
    entre execuções; somente os Cut congelados saem da arena.
    """

    def __init__(
        self,
        catalog: Dict[str, List[StockOption]],
        kerf_width: float,
        allow_tolerance_fit: bool = False,
        token=None,
    ):
        self.catalog = catalog
        self.kerf_width = kerf_width
        self.allow_tolerance_fit = allow_tolerance_fit
        self.token = token
        self.bins: List[OpenBin] = []
        self._by_profile: Dict[str, List[OpenBin]] = {}

    def first_fit(self, request: UnitRequest) -> Optional[OpenBin]:
        for open_bin in self._by_profile.get(request.profile_type, ()):
            if open_bin.fits(request.length):
                return open_bin
        return None

    def best_fit(self, request: UnitRequest) -> Optional[OpenBin]:
        best, best_slack = None, None
        for open_bin in self._by_profile.get(request.profile_type, ()):
            if open_bin.fits(request.length):
                slack = open_bin.remaining_length - request.length - self.kerf_width
                if best is None or slack < best_slack - EPSILON:
                    best, best_slack = open_bin, slack
        return best

    def _trimmed_fit(self, request: UnitRequest, rule: str) -> Optional[Tuple[OpenBin, float]]:
        # Peça cortada abaixo do nominal, nunca abaixo de min_length
        candidates = []
        for open_bin in self._by_profile.get(request.profile_type, ()):
            room = open_bin.remaining_length - self.kerf_width
            if room >= request.item.min_length - EPSILON:
                if rule == FIRST_FIT:
                    return open_bin, min(request.length, room)
                candidates.append((room, open_bin))
        if not candidates:
            return None
        room, open_bin = min(candidates, key=lambda c: c[0])
        return open_bin, min(request.length, room)

    def open_bin(self, request: UnitRequest) -> Tuple[OpenBin, float, bool]:
        """
        Abre uma nova barra para a requisição

        Usa a primeira barra do catálogo (prioridade, barra padrão, comprimento)
        capaz de conter a peça.

        Raises:
            ItemTooLongError: nenhuma barra do perfil comporta a peça
        """
        if self.token is not None:
            self.token.raise_if_cancelled()

        options = self.catalog.get(request.profile_type)
        if not options:
            raise MissingStockOptionError([request.profile_type])

        chosen, length, at_limit = None, request.length, False
        for option in options:
            if option.usable_length(self.kerf_width) >= request.length - EPSILON:
                chosen = option
                break
        if chosen is None and self.allow_tolerance_fit:
            for option in options:
                usable = option.usable_length(self.kerf_width)
                if usable >= request.item.min_length - EPSILON:
                    chosen, length, at_limit = option, min(request.length, usable), True
                    break
        if chosen is None:
            raise ItemTooLongError([request.item.id])

        open_bin = OpenBin(index=len(self.bins), stock=chosen, kerf_width=self.kerf_width)
        self.bins.append(open_bin)
        self._by_profile.setdefault(chosen.profile_type, []).append(open_bin)
        return open_bin, length, at_limit

    def place(self, request: UnitRequest, rule: str = FIRST_FIT) -> OpenBin:
        target = self.first_fit(request) if rule == FIRST_FIT else self.best_fit(request)
        if target is not None:
            target.add(request, request.length)
            return target

        if self.allow_tolerance_fit and request.item.tolerance > 0:
            trimmed = self._trimmed_fit(request, rule)
            if trimmed is not None:
                target, length = trimmed
                target.add(request, length, at_limit=True)
                return target

        target, length, at_limit = self.open_bin(request)
        target.add(request, length, at_limit)
        return target

    def to_cuts(self, waste_policy: WastePolicy, start_index: int = 0) -> List[Cut]:
        """Congela as barras abertas em Cut, com posições da esquerda para a direita"""
        cuts = []
        for offset, open_bin in enumerate(self.bins):
            segments = []
            position = 0.0
            for sequence, (request, length, at_limit) in enumerate(open_bin.placements, 1):
                segments.append(Segment(
                    item=request.item,
                    item_id=request.item.id,
                    work_order_id=request.item.work_order_id,
                    length=length,
                    position=round(position, 6),
                    end_position=round(position + length, 6),
                    sequence_number=sequence,
                    at_tolerance_limit=at_limit,
                ))
                position += length + self.kerf_width

            remaining = max(0.0, round(open_bin.remaining_length, 6))
            cuts.append(Cut(
                index=start_index + offset,
                profile_type=open_bin.profile_type,
                stock_length=open_bin.stock_length,
                unit_cost=open_bin.unit_cost,
                segments=segments,
                kerf_width=self.kerf_width,
                kerf_loss=round(open_bin.kerf_loss, 6),
                used_length=round(open_bin.used_length, 6),
                remaining_length=remaining,
                waste_category=categorize_waste(remaining, waste_policy),
                is_reclaimable=is_reclaimable(remaining, waste_policy),
            ))
        return cuts


def decode_sequence(
    sequence: Iterable[UnitRequest],
    catalog: Dict[str, List[StockOption]],
    kerf_width: float,
    allow_tolerance_fit: bool = False,
    rule: str = FIRST_FIT,
    token=None,
) -> CutArena:
    """
    Reaplica a regra de colocação sobre uma sequência qualquer

    Toda sequência gera um empacotamento viável, o que dispensa reparo de
    indivíduos no algoritmo genético.
    """
    arena = CutArena(catalog, kerf_width, allow_tolerance_fit, token)
    for request in sequence:
        arena.place(request, rule)
    return arena


def pack(
    items: Sequence[CutItem],
    stock: Sequence[StockOption],
    rule: str = FIRST_FIT,
    kerf_width: float = 3.5,
    waste_policy: Optional[WastePolicy] = None,
    allow_tolerance_fit: bool = False,
    token=None,
) -> List[Cut]:
    """
    Empacota as peças em barras com a regra indicada

    Args:
        items: Peças a cortar
        stock: Barras disponíveis (qualquer quantidade de perfis)
        rule: FIRST_FIT (FFD) ou BEST_FIT (BFD)
        kerf_width: Espessura da lâmina (mm)
        waste_policy: Faixas de classificação de sobra
        allow_tolerance_fit: Permite cortar peças até min_length
        token: Token de cancelamento cooperativo

    Returns:
        Lista de barras na ordem de abertura
    """
    catalog = build_catalog(stock)
    check_coverage(items, catalog, kerf_width, allow_tolerance_fit)
    requests = decreasing_order(expand_requests(items))
    arena = decode_sequence(requests, catalog, kerf_width, allow_tolerance_fit, rule, token)
    logger.debug(f"{rule}-fit: {len(requests)} peças em {len(arena.bins)} barras")
    return arena.to_cuts(waste_policy or WastePolicy())


def pack_ffd(items: Sequence[CutItem], stock: Sequence[StockOption], **kwargs) -> List[Cut]:
    """First Fit Decreasing"""
    return pack(items, stock, rule=FIRST_FIT, **kwargs)


def pack_bfd(items: Sequence[CutItem], stock: Sequence[StockOption], **kwargs) -> List[Cut]:
    """Best Fit Decreasing"""
    return pack(items, stock, rule=BEST_FIT, **kwargs)


def run_heuristic(items, stock, config, rule: Optional[str] = None,
                  token=None) -> Tuple[List[Cut], HeuristicTelemetry]:
    """Executa FFD ou BFD conforme a configuração (ou a regra explícita)"""
    if rule is None:
        rule = BEST_FIT if config.mode == "bfd" else FIRST_FIT
    cuts = pack(
        items, stock,
        rule=rule,
        kerf_width=config.kerf_width,
        waste_policy=config.waste_policy,
        allow_tolerance_fit=config.allow_tolerance_fit,
        token=token,
    )
    telemetry = HeuristicTelemetry(
        strategy="bfd" if rule == BEST_FIT else "ffd",
        unit_count=sum(item.quantity for item in items),
        bins_opened=len(cuts),
    )
    return cuts, telemetry
