"""
Consolidação de perfis entre ordens de produção (pooling)

As peças de várias ordens são agrupadas por perfil, cada grupo é otimizado
como uma demanda única e depois cada peça volta a ser atribuída à sua ordem.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .genetic import run_genetic
from .models import (
    Cut, CutItem, PoolingTelemetry, PoolSummary, StockOption, UNASSIGNED_WORK_ORDER,
)
from .packing import BEST_FIT, FIRST_FIT, pack, run_heuristic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolEntry:
    work_order_id: str
    item: CutItem


@dataclass
class ProfilePool:
    """Demanda consolidada de um perfil"""
    profile_type: str
    entries: List[PoolEntry] = field(default_factory=list)

    @property
    def items(self) -> List[CutItem]:
        return [entry.item for entry in self.entries]

    @property
    def work_orders(self) -> List[str]:
        return list(dict.fromkeys(entry.work_order_id for entry in self.entries))

    @property
    def unit_count(self) -> int:
        return sum(entry.item.quantity for entry in self.entries)

    def demand_by_work_order(self) -> Dict[str, int]:
        demand: Dict[str, int] = {}
        for entry in self.entries:
            demand[entry.work_order_id] = demand.get(entry.work_order_id, 0) + entry.item.quantity
        return demand

    def items_of(self, work_order_id: str) -> List[CutItem]:
        return [entry.item for entry in self.entries if entry.work_order_id == work_order_id]


def group_by_work_order(items: Sequence[CutItem]) -> Dict[str, List[CutItem]]:
    """Agrupa peças pela ordem de origem; peças sem ordem vão para UNASSIGNED"""
    orders: Dict[str, List[CutItem]] = {}
    for item in items:
        orders.setdefault(item.work_order_id or UNASSIGNED_WORK_ORDER, []).append(item)
    return orders


def pool(work_orders: Mapping[str, Sequence[CutItem]]) -> List[ProfilePool]:
    """
    Agrupa as peças de todas as ordens por perfil

    Args:
        work_orders: Peças por ordem de produção

    Returns:
        Um pool por perfil, na ordem em que cada perfil aparece pela primeira vez
    """
    pools: Dict[str, ProfilePool] = {}
    for work_order_id, items in work_orders.items():
        for item in items:
            target = pools.setdefault(item.profile_type, ProfilePool(item.profile_type))
            target.entries.append(PoolEntry(work_order_id, item))
    return list(pools.values())


def attribute_segments(cuts: Sequence[Cut], pools: Sequence[ProfilePool]) -> List[Cut]:
    """
    Grava em cada Segment a ordem de produção da peça de origem

    Uma mesma instância de peça listada em várias ordens tem suas unidades
    distribuídas entre elas, `quantity` unidades por ordem, na ordem dos pools.
    """
    provenance: Dict[int, List[str]] = {}
    for p in pools:
        for entry in p.entries:
            provenance.setdefault(id(entry.item), []).extend([entry.work_order_id] * entry.item.quantity)
    pending = {key: iter(orders) for key, orders in provenance.items()}

    attributed = []
    for cut in cuts:
        segments = []
        for segment in cut.segments:
            order = next(pending.get(id(segment.item), iter(())), None)
            if order is None:
                order = segment.work_order_id or UNASSIGNED_WORK_ORDER
            if order != segment.work_order_id:
                segment = segment.model_copy(update={"work_order_id": order})
            segments.append(segment)
        attributed.append(cut.model_copy(update={"segments": segments}))
    return attributed


def count_mixed_bars(cuts: Sequence[Cut]) -> int:
    """Barras que atendem mais de uma ordem"""
    return sum(1 for cut in cuts if len({s.work_order_id for s in cut.segments}) > 1)


def pool_seeds(seed: int, count: int) -> List[int]:
    """Sementes independentes por pool, derivadas da semente da execução"""
    return [int(child.generate_state(1)[0]) for child in np.random.SeedSequence(seed).spawn(count)]


class PoolingStrategy:
    """Resolve cada pool com a estratégia interna configurada"""

    def __init__(self, stock: Sequence[StockOption], config, seed: int, token=None):
        self.stock = list(stock)
        self.config = config
        self.seed = seed
        self.token = token

    def _solve(self, profile_pool: ProfilePool, seed: int, share: int):
        config = self.config
        if config.inner == "genetic":
            if config.time_budget_ms is not None and config.pool_workers == 1:
                # Pools em sequência dividem o orçamento de tempo
                config = config.model_copy(update={"time_budget_ms": config.time_budget_ms / share})
            return run_genetic(profile_pool.items, self.stock, config, seed, self.token)
        rule = BEST_FIT if config.inner == "bfd" else FIRST_FIT
        return run_heuristic(profile_pool.items, self.stock, config, rule=rule, token=self.token)

    def unpooled_bar_count(self, profile_pool: ProfilePool) -> int:
        """Barras necessárias se cada ordem fosse cortada separadamente"""
        rule = BEST_FIT if self.config.inner == "bfd" else FIRST_FIT
        return sum(
            len(pack(profile_pool.items_of(order), self.stock, rule=rule,
                     kerf_width=self.config.kerf_width, waste_policy=self.config.waste_policy,
                     allow_tolerance_fit=self.config.allow_tolerance_fit, token=self.token))
            for order in profile_pool.work_orders
        )

    def run(self, pools: Sequence[ProfilePool]) -> Tuple[List[Cut], PoolingTelemetry]:
        seeds = pool_seeds(self.seed, len(pools))
        jobs = list(zip(pools, seeds))

        def solve(job):
            profile_pool, seed = job
            return self._solve(profile_pool, seed, len(pools))

        if self.config.pool_workers > 1 and len(pools) > 1:
            with ThreadPoolExecutor(max_workers=self.config.pool_workers) as executor:
                solved = list(executor.map(solve, jobs))
        else:
            solved = [solve(job) for job in jobs]

        cuts: List[Cut] = []
        summaries: List[PoolSummary] = []
        inner_telemetry = []
        for profile_pool, (pool_cuts, telemetry) in zip(pools, solved):
            pool_cuts = attribute_segments(pool_cuts, [profile_pool])
            summary = PoolSummary(
                profile_type=profile_pool.profile_type,
                work_orders=profile_pool.work_orders,
                unit_count=profile_pool.unit_count,
                bar_count=len(pool_cuts),
                mixed_bars=count_mixed_bars(pool_cuts),
                unpooled_bar_count=self.unpooled_bar_count(profile_pool),
            )
            logger.info(f"Pool {summary.profile_type}: {len(summary.work_orders)} ordens, "
                        f"{summary.bar_count} barras ({summary.bars_saved} a menos que sem pooling), "
                        f"{summary.mixed_bars} mistas")
            summaries.append(summary)
            inner_telemetry.append(telemetry)
            start = len(cuts)
            cuts.extend(cut.model_copy(update={"index": start + offset})
                        for offset, cut in enumerate(pool_cuts))

        return cuts, PoolingTelemetry(inner=self.config.inner, pools=summaries, inner_telemetry=inner_telemetry)


def run_pooling(items, stock, config, seed: int, token=None,
                work_orders: Optional[Mapping[str, Sequence[CutItem]]] = None) -> Tuple[List[Cut], PoolingTelemetry]:
    """
    Executa a estratégia de pooling

    Args:
        items: Peças (a ordem de cada uma vem de `work_order_id`)
        stock: Catálogo de barras
        config: PoolingConfig
        seed: Semente da execução
        token: Token de cancelamento
        work_orders: Agrupamento explícito por ordem; substitui `work_order_id`
    """
    pools = pool(work_orders if work_orders is not None else group_by_work_order(items))
    return PoolingStrategy(stock, config, seed, token).run(pools)
