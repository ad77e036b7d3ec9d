"""
Comparison of two subjects' credits on a shared timeline.

The engine lives in actorsync.comparison.engine; it depends on the data
source layer, which in turn builds on these types.
"""

from actorsync.comparison.types import (
    Credit,
    CreditList,
    Entity,
    Side,
    SubjectKind,
    Timeline,
    TimelineItem,
    YearBucket,
)
from actorsync.comparison.timeline import build_timeline

__all__ = [
    "Credit",
    "CreditList",
    "Entity",
    "Side",
    "SubjectKind",
    "Timeline",
    "TimelineItem",
    "YearBucket",
    "build_timeline",
]
