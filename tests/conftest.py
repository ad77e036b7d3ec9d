"""
Shared fixtures for the test suite.

Time, sleeping and the network are all injected, so nothing here waits on
a real clock or talks to TMDB.
"""

from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from actorsync.container import ServiceContainer, build_container
from actorsync.services.cache_store import MemoryCacheStore
from actorsync.settings import Settings

BASE_URL = "https://api.test/3"

# ---------------------------------------------------------------------------
# Fake time
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock usable wherever a ``time.monotonic`` is expected."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays and returns immediately."""

    def __init__(self, clock: FakeClock | None = None):
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


# ---------------------------------------------------------------------------
# Fake TMDB
# ---------------------------------------------------------------------------


Responder = Callable[[httpx.Request], httpx.Response]


class FakeTMDB:
    """
    Router behind an ``httpx.MockTransport``.

    Each path has a queue of responses; the last one repeats once the queue
    is drained. Unknown paths answer 404.
    """

    def __init__(self):
        self.routes: dict[str, list[httpx.Response | Responder]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, *responses: httpx.Response | Responder) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def json(self, path: str, payload: dict[str, Any], status: int = 200) -> None:
        self.add(path, httpx.Response(status, json=payload))

    def calls(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == f"/3/{path}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/3/")
        queue = self.routes.get(path)
        if not queue:
            return httpx.Response(404, json={"status_message": "not found"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            return response(request)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(self.handler)
        )


# ---------------------------------------------------------------------------
# Payload factories
# ---------------------------------------------------------------------------


def person_payload(person_id: int, name: str, movies: list[tuple[int, str, str, str]]) -> dict[str, Any]:
    """``person/{id}?append_to_response=movie_credits`` with (id, title, date, character) rows."""
    return {
        "id": person_id,
        "name": name,
        "profile_path": f"/p{person_id}.jpg",
        "movie_credits": {
            "cast": [
                {"id": mid, "title": title, "release_date": released, "character": character}
                for mid, title, released, character in movies
            ]
        },
    }


def movie_payload(movie_id: int, title: str, cast: list[tuple[int, str, str, int]]) -> dict[str, Any]:
    """``movie/{id}?append_to_response=credits`` with (id, name, character, order) rows."""
    return {
        "id": movie_id,
        "title": title,
        "release_date": "2000-01-01",
        "credits": {
            "cast": [
                {"id": pid, "name": name, "character": character, "order": order}
                for pid, name, character, order in cast
            ]
        },
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture()
def tmdb() -> FakeTMDB:
    return FakeTMDB()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        tmdb_api_key="test-key",
        tmdb_base_url=BASE_URL,
        backoff_jitter=0.0,
        circuit_failure_threshold=3,
    )


@pytest.fixture()
async def container(settings, tmdb, clock, sleep) -> AsyncIterator[ServiceContainer]:
    """Fully wired services over the fake TMDB and an in-memory cache."""
    http_client = tmdb.client()
    services = build_container(
        settings,
        http_client=http_client,
        cache_store=MemoryCacheStore(clock=clock),
        clock=clock,
        sleep=sleep,
    )
    yield services
    await services.close()
    await http_client.aclose()
