"""
TMDB data source for filmographies, casts and people search.

API Documentation: https://developer.themoviedb.org/reference/intro/getting-started
Credits are fetched together with the subject's metadata through
``append_to_response``, so one cached call answers both.
"""

import asyncio
from datetime import timedelta
from typing import Any

from loguru import logger

from actorsync.comparison.types import COMPARISON_OPERATION, CreditList, Entity, SubjectKind
from actorsync.datasource.base import BaseDataSource
from actorsync.datasource.tmdb_parsing import (
    SERVICE_ID,
    parse_movie_cast,
    parse_person_credits,
    parse_person_search,
)
from actorsync.services.client import ResilientClient

_CREDITS_REQUEST = {
    SubjectKind.PERSON: ("movie_credits", parse_person_credits),
    SubjectKind.MOVIE: ("credits", parse_movie_cast),
}


class TMDBSource(BaseDataSource):
    """
    The Movie Database API data source.

    Cache layout (see CacheKeyBuilder):
        v1:person:<id>:credits     person metadata + movie credits
        v1:movie:<id>:credits      movie metadata + cast
        v1:search:person:<query>   people search
        v1:comparison:<low>:<high>:<kind>   whole timelines (ComparisonEngine)
    """

    BASE_URL = "https://api.themoviedb.org/3"
    SERVICE_ID = SERVICE_ID

    def __init__(
        self,
        client: ResilientClient,
        credits_ttl: timedelta = timedelta(minutes=10),
        search_ttl: timedelta = timedelta(minutes=5),
    ):
        super().__init__(client)
        self.credits_ttl = credits_ttl
        self.search_ttl = search_ttl

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return self.client.has_api_key

    async def fetch_credit_list(
        self, subject_id: int, kind: SubjectKind = SubjectKind.PERSON
    ) -> CreditList:
        """Fetch a person's filmography or a movie's cast."""
        append, parse = _CREDITS_REQUEST[kind]
        data = await self.client.call(
            f"{kind.value}/{subject_id}",
            {"append_to_response": append},
            operation=kind.value,
            args=[subject_id, "credits"],
            ttl=self.credits_ttl,
        )
        credit_list = parse(data)
        logger.debug(
            f"Fetched {len(credit_list)} credits for {kind.value} {subject_id} "
            f"({credit_list.subject.name})"
        )
        return credit_list

    async def fetch_subject(
        self, subject_id: int, kind: SubjectKind = SubjectKind.PERSON
    ) -> Entity:
        """Display metadata for one subject (shares the credits cache entry)."""
        credit_list = await self.fetch_credit_list(subject_id, kind)
        return credit_list.subject

    async def fetch_credit_lists(
        self, subject_ids: list[int], kind: SubjectKind = SubjectKind.PERSON
    ) -> list[CreditList]:
        """
        Credit lists for several subjects, in request order.

        Cached subjects come from one batch read; only the rest are fetched,
        concurrently. The first failure cancels the remaining fetches.
        """
        append, parse = _CREDITS_REQUEST[kind]

        async def fetch_missing(missing: list[Any]) -> list[dict[str, Any]]:
            logger.debug(f"Batch fetching {len(missing)} uncached {kind.value} credit lists")
            tasks = [
                asyncio.create_task(
                    self.client.call(
                        f"{kind.value}/{args[0]}",
                        {"append_to_response": append},
                        use_cache=False,
                    )
                )
                for args in missing
            ]
            try:
                return list(await asyncio.gather(*tasks))
            finally:
                pending = [task for task in tasks if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

        payloads = await self.client.cache.fetch_many(
            kind.value,
            [[subject_id, "credits"] for subject_id in subject_ids],
            self.credits_ttl,
            fetch_missing,
        )
        return [parse(data) for data in payloads]

    async def fetch_subjects(
        self, subject_ids: list[int], kind: SubjectKind = SubjectKind.PERSON
    ) -> list[Entity]:
        """Display metadata for several subjects, e.g. names for a list of ids."""
        credit_lists = await self.fetch_credit_lists(subject_ids, kind)
        return [credit_list.subject for credit_list in credit_lists]

    async def search_people(self, query: str) -> list[Entity]:
        """Search people by name; blank queries return nothing without a call."""
        if not query or not query.strip():
            return []
        data = await self.client.call(
            "search/person",
            {"query": query.strip()},
            operation="search",
            args=["person", query],
            ttl=self.search_ttl,
        )
        return parse_person_search(data)

    async def invalidate_subject(
        self, subject_id: int, kind: SubjectKind = SubjectKind.PERSON
    ) -> int:
        """Drop every cached facet of one subject, including comparisons it takes part in."""
        cache = self.client.cache
        count = await cache.invalidate(cache.key_builder.prefix(kind.value, subject_id))
        count += await cache.invalidate_pairs(COMPARISON_OPERATION, subject_id, kind)
        logger.info(f"Invalidated {count} cache entries for {kind.value} {subject_id}")
        return count
