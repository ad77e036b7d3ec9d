"""
ComparisonEngine - compares two subjects' credits on a merged timeline.
"""

import asyncio
from datetime import timedelta
from typing import Any

from loguru import logger

from actorsync.comparison.timeline import build_timeline
from actorsync.comparison.types import COMPARISON_OPERATION, CreditList, SubjectKind, Timeline
from actorsync.datasource.base import BaseDataSource
from actorsync.services.cache import CacheManager
from actorsync.services.errors import ValidationError


def validate_subject_id(value: Any, name: str = "subject_id") -> int:
    """Accept positive integers or digit strings; anything else is a ValidationError."""
    if value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer id, got {value!r}")
    if isinstance(value, int):
        subject_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        subject_id = int(value.strip())
    else:
        raise ValidationError(f"{name} must be an integer id, got {value!r}")
    if subject_id <= 0:
        raise ValidationError(f"{name} must be positive, got {subject_id}")
    return subject_id


class ComparisonEngine:
    """
    Fetches two subjects' credits concurrently and merges them into a Timeline.

    Whole timelines are cached under an order-independent key, always in the
    lower-id-first orientation, and relabelled when the caller asked for the
    other order.

    Usage:
        engine = ComparisonEngine(source, cache=cache_manager)
        timeline = await engine.compare(287, 819)
    """

    def __init__(
        self,
        source: BaseDataSource,
        cache: CacheManager | None = None,
        comparison_ttl: timedelta = timedelta(minutes=15),
    ):
        self._source = source
        self._cache = cache
        self._comparison_ttl = comparison_ttl

    async def fetch_credit_list(
        self, subject_id: Any, kind: SubjectKind = SubjectKind.PERSON
    ) -> CreditList:
        """Credits of a single subject."""
        return await self._source.fetch_credit_list(validate_subject_id(subject_id), kind)

    async def compare(
        self,
        subject_a_id: Any,
        subject_b_id: Any,
        kind: SubjectKind = SubjectKind.PERSON,
    ) -> Timeline:
        """
        Compare two subjects.

        Raises:
            ValidationError: If either id is missing or malformed
            ServiceError: The first failure of either fetch; no partial timeline
        """
        a = validate_subject_id(subject_a_id, "subject_a_id")
        b = validate_subject_id(subject_b_id, "subject_b_id")
        low, high = min(a, b), max(a, b)

        logger.info(f"Comparing {kind.value} {a} with {kind.value} {b}")

        if self._cache is None:
            timeline = await self._build(low, high, kind)
        else:

            async def compute() -> dict[str, Any]:
                built = await self._build(low, high, kind)
                return built.model_dump(mode="json")

            payload = await self._cache.fetch(
                COMPARISON_OPERATION,
                [low, high, kind],
                self._comparison_ttl,
                compute,
                pair=True,
            )
            timeline = Timeline.model_validate(payload)

        return timeline if a == low else timeline.swapped()

    async def _build(self, a: int, b: int, kind: SubjectKind) -> Timeline:
        if a == b:
            credits = await self._source.fetch_credit_list(a, kind)
            timeline = build_timeline(credits, credits, kind)
        else:
            credits_a, credits_b = await self._fetch_both(a, b, kind)
            timeline = build_timeline(credits_a, credits_b, kind)

        logger.debug(
            f"Timeline {kind.value} {a}/{b}: {len(timeline.buckets)} buckets, "
            f"{len(timeline.shared_ids)} shared"
        )
        return timeline

    async def _fetch_both(
        self, a: int, b: int, kind: SubjectKind
    ) -> tuple[CreditList, CreditList]:
        """Fetch both credit lists in parallel; the first failure cancels the other."""
        tasks = [
            asyncio.create_task(self._source.fetch_credit_list(a, kind)),
            asyncio.create_task(self._source.fetch_credit_list(b, kind)),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in tasks:
                if task in done and not task.cancelled() and task.exception() is not None:
                    error = task.exception()
                    logger.warning(
                        f"Comparison {kind.value} {a}/{b} aborted: {type(error).__name__}: {error}"
                    )
                    raise error
            return tasks[0].result(), tasks[1].result()
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
