"""Announcement reasons - weighted random pick from the template pool.

The pool is turned into a cumulative-weight table once per load. A pick is
one uniform draw in [0, total) followed by a binary search, so large
weights cost nothing extra.
"""
import bisect
import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AnnouncementReasonTemplate

logger = logging.getLogger(__name__)

DEFAULT_REASON_CODE = "SERVER"
DEFAULT_REASON_TEXT = "Server maintenance or outage"

# Shown for active incidents that have no persisted reason
FALLBACK_REASONS = [
    "Possible ISP disruption",
    "Server maintenance or outage",
    "Cache/CDN propagation issue",
    "Upstream DNS problem",
    "Hardware or network fault",
    "Datacenter connectivity issue",
    "Unexpected software crash",
    "Regional network congestion",
]

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619


@dataclass(frozen=True)
class ReasonChoice:
    code: str
    text: str


DEFAULT_REASON = ReasonChoice(DEFAULT_REASON_CODE, DEFAULT_REASON_TEXT)


def _normalize_weight(weight) -> int:
    """Weights below 1 (or missing) count as 1."""
    try:
        return max(1, int(weight or 1))
    except (TypeError, ValueError):
        return 1


class WeightedReasonPool:
    """Reason templates with selection probability proportional to weight."""

    def __init__(self, templates: Iterable[Tuple[str, str, Optional[int]]]):
        self._choices: List[ReasonChoice] = []
        self._cumulative: List[int] = []
        total = 0
        for code, label, weight in templates:
            total += _normalize_weight(weight)
            self._choices.append(ReasonChoice(code, label))
            self._cumulative.append(total)
        self.total_weight = total

    def __len__(self) -> int:
        return len(self._choices)

    def pick(self, rng: Optional[random.Random] = None) -> ReasonChoice:
        """Draw one reason. An empty pool yields the default reason."""
        if not self._choices:
            return DEFAULT_REASON

        draw = (rng or random).random() * self.total_weight
        index = bisect.bisect_right(self._cumulative, draw)
        return self._choices[min(index, len(self._choices) - 1)]


async def load_reason_pool(session: AsyncSession) -> WeightedReasonPool:
    """Build the pool from the templates table."""
    result = await session.execute(
        select(
            AnnouncementReasonTemplate.code,
            AnnouncementReasonTemplate.label,
            AnnouncementReasonTemplate.weight,
        ).order_by(AnnouncementReasonTemplate.id)
    )
    return WeightedReasonPool(result.all())


def fnv1a_32(seed: str) -> int:
    """32-bit FNV-1a hash of a string."""
    h = FNV_OFFSET_BASIS
    for byte in seed.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def pick_deterministic(seed: str, options: Sequence[str] = FALLBACK_REASONS) -> str:
    """Stable pick so every viewer sees the same reason for the same outage."""
    return options[fnv1a_32(seed) % max(1, len(options))]
