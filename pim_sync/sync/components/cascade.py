# pim_sync/sync/components/cascade.py
# Ordered "first match wins" evaluation for search and matching strategies.
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

C = TypeVar("C")
Ctx = TypeVar("Ctx")


@dataclass(frozen=True)
class Strategy(Generic[C, Ctx]):
    name: str
    predicate: Callable[[C, Ctx], bool]


@dataclass
class CascadeResult(Generic[C]):
    candidate: Optional[C]
    strategy: Optional[str]
    tried: List[str]

    @property
    def matched(self) -> bool:
        return self.candidate is not None


def first_match(
    strategies: Sequence[Strategy[C, Ctx]],
    candidates: Iterable[C],
    context: Ctx,
) -> CascadeResult[C]:
    """
    Evaluate strategies in order; within a strategy, candidates in order.
    The first (strategy, candidate) pair whose predicate holds wins.
    """
    pool: Tuple[C, ...] = tuple(candidates)
    tried: List[str] = []
    for strategy in strategies:
        tried.append(strategy.name)
        for cand in pool:
            if strategy.predicate(cand, context):
                return CascadeResult(candidate=cand, strategy=strategy.name, tried=tried)
    return CascadeResult(candidate=None, strategy=None, tried=tried)
