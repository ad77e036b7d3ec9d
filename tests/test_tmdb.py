"""Tests for actorsync/datasource/tmdb_parsing.py and actorsync/datasource/tmdb.py."""

from datetime import date

import httpx
import pytest

from actorsync.comparison.types import SubjectKind
from actorsync.datasource.tmdb_parsing import (
    parse_movie_cast,
    parse_person_credits,
    parse_person_search,
    parse_release_date,
)
from actorsync.services.errors import NotFoundError, UnknownServiceError
from conftest import movie_payload, person_payload

# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseReleaseDate:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1999-10-15", date(1999, 10, 15)),
            ("", None),
            (None, None),
            ("not-a-date", None),
            ("2020-13-01", None),
        ],
    )
    def test_values(self, value, expected) -> None:
        assert parse_release_date(value) == expected


class TestParsePersonCredits:
    def test_subject_and_credits(self) -> None:
        payload = person_payload(
            287,
            "Brad Pitt",
            [
                (1422, "The Departed", "2006-10-06", "Cameo"),
                (550, "Fight Club", "1999-10-15", "Tyler Durden"),
            ],
        )
        credit_list = parse_person_credits(payload)

        assert credit_list.subject.name == "Brad Pitt"
        assert credit_list.subject.kind == SubjectKind.PERSON
        assert credit_list.subject.attributes["profile_path"] == "/p287.jpg"
        # Ordered by release date
        assert [c.entity.id for c in credit_list.credits] == [550, 1422]
        assert credit_list.credits[0].role == "Tyler Durden"
        assert credit_list.credits[0].year == 1999

    def test_undated_credits_sort_last(self) -> None:
        payload = person_payload(
            1, "A", [(5, "Upcoming", "", "Lead"), (6, "Old", "1990-01-01", "Lead")]
        )
        credit_list = parse_person_credits(payload)

        assert [c.entity.id for c in credit_list.credits] == [6, 5]
        assert credit_list.credits[1].release_date is None

    def test_repeated_movie_folds_roles(self) -> None:
        payload = person_payload(
            1, "A", [(7, "Film", "2001-01-01", "Self"), (7, "Film", "2001-01-01", "Narrator")]
        )
        credit_list = parse_person_credits(payload)

        assert len(credit_list) == 1
        assert credit_list.credits[0].role == "Self / Narrator"

    def test_entries_without_id_are_skipped(self) -> None:
        payload = person_payload(1, "A", [(8, "Film", "2001-01-01", "Lead")])
        payload["movie_credits"]["cast"].append({"title": "No id"})
        assert len(parse_person_credits(payload)) == 1

    def test_missing_credits_block(self) -> None:
        credit_list = parse_person_credits({"id": 1, "name": "A"})
        assert credit_list.credits == ()

    def test_missing_subject_id_is_malformed(self) -> None:
        with pytest.raises(UnknownServiceError):
            parse_person_credits({"name": "Nobody"})


class TestParseMovieCast:
    def test_cast_ordered_by_billing(self) -> None:
        payload = movie_payload(
            550, "Fight Club", [(819, "Edward Norton", "Narrator", 0), (287, "Brad Pitt", "Tyler", 1)]
        )
        credit_list = parse_movie_cast(payload)

        assert credit_list.subject.name == "Fight Club"
        assert credit_list.subject.kind == SubjectKind.MOVIE
        assert [c.entity.id for c in credit_list.credits] == [819, 287]
        assert all(c.entity.kind == SubjectKind.PERSON for c in credit_list.credits)
        assert all(c.release_date is None for c in credit_list.credits)


class TestParsePersonSearch:
    def test_results(self) -> None:
        payload = {
            "results": [
                {
                    "id": 287,
                    "name": "Brad Pitt",
                    "known_for": [{"title": "Fight Club"}, {"name": "Friends"}],
                },
                {"name": "no id"},
            ]
        }
        people = parse_person_search(payload)

        assert [p.id for p in people] == [287]
        assert people[0].attributes["known_for"] == ["Fight Club", "Friends"]

    def test_empty(self) -> None:
        assert parse_person_search({}) == []


# ---------------------------------------------------------------------------
# TMDBSource over the fake API
# ---------------------------------------------------------------------------


class TestTMDBSource:
    @pytest.mark.asyncio
    async def test_fetch_person_credits(self, container, tmdb) -> None:
        tmdb.json("person/287", person_payload(287, "Brad Pitt", [(550, "Fight Club", "1999-10-15", "Tyler")]))

        credit_list = await container.source.fetch_credit_list(287)

        assert credit_list.subject.id == 287
        assert tmdb.requests[0].url.params["append_to_response"] == "movie_credits"

    @pytest.mark.asyncio
    async def test_fetch_movie_cast(self, container, tmdb) -> None:
        tmdb.json("movie/550", movie_payload(550, "Fight Club", [(287, "Brad Pitt", "Tyler", 0)]))

        credit_list = await container.source.fetch_credit_list(550, SubjectKind.MOVIE)

        assert credit_list.subject.kind == SubjectKind.MOVIE
        assert tmdb.requests[0].url.params["append_to_response"] == "credits"

    @pytest.mark.asyncio
    async def test_subject_shares_credits_entry(self, container, tmdb) -> None:
        tmdb.json("person/287", person_payload(287, "Brad Pitt", []))

        await container.source.fetch_credit_list(287)
        subject = await container.source.fetch_subject(287)

        assert subject.name == "Brad Pitt"
        assert tmdb.calls("person/287") == 1

    @pytest.mark.asyncio
    async def test_unknown_person(self, container, tmdb) -> None:
        with pytest.raises(NotFoundError):
            await container.source.fetch_credit_list(999999999)
        assert tmdb.calls("person/999999999") == 1

    @pytest.mark.asyncio
    async def test_search(self, container, tmdb) -> None:
        tmdb.json("search/person", {"results": [{"id": 287, "name": "Brad Pitt"}]})

        people = await container.source.search_people("Brad Pitt")

        assert [p.name for p in people] == ["Brad Pitt"]
        assert tmdb.requests[0].url.params["query"] == "Brad Pitt"

    @pytest.mark.asyncio
    async def test_blank_search_makes_no_call(self, container, tmdb) -> None:
        assert await container.source.search_people("   ") == []
        assert tmdb.requests == []

    @pytest.mark.asyncio
    async def test_invalidate_subject_forces_refetch(self, container, tmdb) -> None:
        tmdb.json("person/287", person_payload(287, "Brad Pitt", []))

        await container.source.fetch_credit_list(287)
        assert await container.source.invalidate_subject(287) == 1
        await container.source.fetch_credit_list(287)

        assert tmdb.calls("person/287") == 2

    @pytest.mark.asyncio
    async def test_invalidate_subject_drops_its_comparisons(self, container, tmdb) -> None:
        fight_club = (550, "Fight Club", "1999-10-15", "Tyler Durden")
        tmdb.add(
            "person/287",
            httpx.Response(200, json=person_payload(287, "Brad Pitt", [fight_club])),
            httpx.Response(
                200,
                json=person_payload(
                    287, "Brad Pitt", [fight_club, (9001, "New Film", "2020-05-01", "Lead")]
                ),
            ),
        )
        tmdb.json(
            "person/819",
            person_payload(819, "Edward Norton", [(550, "Fight Club", "1999-10-15", "The Narrator")]),
        )

        first = await container.engine.compare(819, 287)
        assert first.years == [1999]

        # The credits entry and the cached comparison
        assert await container.source.invalidate_subject(287) == 2

        second = await container.engine.compare(819, 287)
        assert second.years == [1999, 2020]
        assert tmdb.calls("person/287") == 2
        assert tmdb.calls("person/819") == 1

    @pytest.mark.asyncio
    async def test_invalidate_subject_keeps_unrelated_comparisons(self, container, tmdb) -> None:
        for person_id in (1, 2, 3):
            tmdb.json(f"person/{person_id}", person_payload(person_id, f"P{person_id}", []))

        await container.engine.compare(1, 2)
        await container.engine.compare(2, 3)
        await container.source.invalidate_subject(1)
        await container.engine.compare(3, 2)

        assert tmdb.calls("person/2") == 1
        assert tmdb.calls("person/3") == 1

    @pytest.mark.asyncio
    async def test_fetch_subjects_fetches_only_uncached(self, container, tmdb) -> None:
        tmdb.json("person/287", person_payload(287, "Brad Pitt", []))
        tmdb.json("person/819", person_payload(819, "Edward Norton", []))
        tmdb.json("person/1", person_payload(1, "Someone", []))
        await container.source.fetch_credit_list(287)

        people = await container.source.fetch_subjects([819, 287, 1])

        assert [p.name for p in people] == ["Edward Norton", "Brad Pitt", "Someone"]
        assert tmdb.calls("person/287") == 1
        assert tmdb.calls("person/819") == 1

        # Fetched subjects were cached individually
        await container.source.fetch_subject(1)
        await container.source.fetch_subjects([1, 819])
        assert tmdb.calls("person/1") == 1
        assert tmdb.calls("person/819") == 1

    @pytest.mark.asyncio
    async def test_fetch_credit_lists_movies(self, container, tmdb) -> None:
        tmdb.json("movie/550", movie_payload(550, "Fight Club", [(287, "Brad Pitt", "Tyler", 0)]))
        tmdb.json("movie/807", movie_payload(807, "Se7en", [(287, "Brad Pitt", "Mills", 0)]))

        credit_lists = await container.source.fetch_credit_lists([807, 550], SubjectKind.MOVIE)

        assert [c.subject.name for c in credit_lists] == ["Se7en", "Fight Club"]
        assert tmdb.requests[0].url.params["append_to_response"] == "credits"

    @pytest.mark.asyncio
    async def test_fetch_subjects_failure_caches_nothing(self, container, tmdb) -> None:
        tmdb.json("person/287", person_payload(287, "Brad Pitt", []))

        with pytest.raises(NotFoundError):
            await container.source.fetch_subjects([287, 999999999])

        await container.source.fetch_subject(287)
        assert tmdb.calls("person/287") == 2

    @pytest.mark.asyncio
    async def test_is_configured(self, container) -> None:
        assert container.source.is_configured()
