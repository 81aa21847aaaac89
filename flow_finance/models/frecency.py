"""
Frecency Ranking

Frecency mixes how OFTEN something is used with how RECENTLY it was used.
Accounts and categories are sorted by it so the ones a user reaches for
show up first.

Score (0..1) = 0.5 * frequency + 0.5 * recency, where
- frequency = use_count / max use_count within the group
- recency   = 0.5 ** (days since last use / half-life)
"""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, Field


class FrecencyData(BaseModel):
    """Usage record for one entity."""

    type: str = Field(..., min_length=1, description="Entity kind, e.g. 'account'")
    uuid: str
    use_count: int = Field(default=0, ge=0)
    last_used: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> str:
        return f"{self.type}:{self.uuid}"

    def used(self, now: Optional[datetime] = None) -> "FrecencyData":
        """Record one more use."""
        return self.model_copy(update={
            "use_count": self.use_count + 1,
            "last_used": now or datetime.now(),
        })


class FrecencyGroup:
    """Scores a set of entities of the same kind against each other."""

    FREQUENCY_WEIGHT = 0.5
    RECENCY_WEIGHT = 0.5

    def __init__(
        self,
        data: Iterable[FrecencyData],
        half_life_days: float = 14.0,
    ):
        self._data = {item.uuid: item for item in data}
        self._half_life_days = half_life_days
        self._max_use_count = max(
            (item.use_count for item in self._data.values()),
            default=0,
        )

    def __len__(self) -> int:
        return len(self._data)

    def get_score(self, uuid: str, now: Optional[datetime] = None) -> float:
        """Score for uuid; 0.0 if it was never used."""
        item = self._data.get(uuid)
        if item is None or self._max_use_count == 0:
            return 0.0

        now = now or datetime.now()
        age_days = max((now - item.last_used).total_seconds(), 0.0) / 86400

        frequency = item.use_count / self._max_use_count
        recency = 0.5 ** (age_days / self._half_life_days)

        return self.FREQUENCY_WEIGHT * frequency + self.RECENCY_WEIGHT * recency
