"""
Comparison domain types using Pydantic models.

All models are frozen: a credit list or timeline is built once per fetch or
comparison and replaced, never edited.
"""

from datetime import date
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field

# Cache operation under which whole timelines are stored as pair keys
COMPARISON_OPERATION = "comparison"


class SubjectKind(str, Enum):
    """What a comparison subject is; its credits are of the other kind."""

    PERSON = "person"
    MOVIE = "movie"


class Side(str, Enum):
    """Which subject(s) a timeline item came from."""

    A = "A"
    B = "B"
    BOTH = "both"

    def swapped(self) -> "Side":
        if self is Side.A:
            return Side.B
        if self is Side.B:
            return Side.A
        return self


class Entity(BaseModel):
    """An actor or a movie as the upstream API identifies it."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    kind: SubjectKind
    attributes: dict[str, Any] = Field(default_factory=dict)


class Credit(BaseModel):
    """One entry of a subject's credits."""

    model_config = ConfigDict(frozen=True)

    entity: Entity
    role: str | None = None
    release_date: date | None = None
    sort_key: float | None = None  # release date ordinal or billing order; None sorts last

    @property
    def year(self) -> int | None:
        return self.release_date.year if self.release_date else None


class CreditList(BaseModel):
    """A subject and its credits, ordered by sort_key then entity id, one per entity."""

    model_config = ConfigDict(frozen=True)

    subject: Entity
    credits: tuple[Credit, ...] = ()

    @property
    def ids(self) -> frozenset[int]:
        return frozenset(credit.entity.id for credit in self.credits)

    def __len__(self) -> int:
        return len(self.credits)


class TimelineItem(BaseModel):
    """A single entity on the timeline."""

    model_config = ConfigDict(frozen=True)

    subject: Side
    entity: Entity
    is_shared: bool
    release_date: date | None = None
    role_a: str | None = None
    role_b: str | None = None

    def swapped(self) -> "TimelineItem":
        return self.model_copy(
            update={
                "subject": self.subject.swapped(),
                "role_a": self.role_b,
                "role_b": self.role_a,
            }
        )


class YearBucket(BaseModel):
    """Timeline items released in one year (``year=None`` for undated items)."""

    model_config = ConfigDict(frozen=True)

    year: int | None
    items: tuple[TimelineItem, ...] = ()

    def swapped(self) -> "YearBucket":
        return YearBucket(year=self.year, items=tuple(item.swapped() for item in self.items))


class Timeline(BaseModel):
    """Two subjects' credits merged into year buckets with shared items flagged."""

    model_config = ConfigDict(frozen=True)

    kind: SubjectKind
    subject_a: Entity
    subject_b: Entity
    buckets: tuple[YearBucket, ...] = ()
    shared_ids: frozenset[int] = frozenset()

    @property
    def years(self) -> list[int | None]:
        return [bucket.year for bucket in self.buckets]

    def items(self) -> Iterator[TimelineItem]:
        for bucket in self.buckets:
            yield from bucket.items

    def bucket(self, year: int | None) -> YearBucket | None:
        for bucket in self.buckets:
            if bucket.year == year:
                return bucket
        return None

    def swapped(self) -> "Timeline":
        """The same comparison seen from the other side: A and B trade places."""
        return Timeline(
            kind=self.kind,
            subject_a=self.subject_b,
            subject_b=self.subject_a,
            buckets=tuple(bucket.swapped() for bucket in self.buckets),
            shared_ids=self.shared_ids,
        )
