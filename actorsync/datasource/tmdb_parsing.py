"""
TMDB payload parsing - turns raw API JSON into domain models.
"""

from datetime import date
from typing import Any

from actorsync.comparison.timeline import merge_credits
from actorsync.comparison.types import Credit, CreditList, Entity, SubjectKind
from actorsync.services.errors import UnknownServiceError

SERVICE_ID = "tmdb-api"

_PERSON_ATTRIBUTES = (
    "profile_path",
    "biography",
    "birthday",
    "place_of_birth",
    "known_for_department",
    "popularity",
)
_MOVIE_ATTRIBUTES = ("poster_path", "overview", "release_date", "runtime", "popularity")
_MOVIE_CREDIT_ATTRIBUTES = ("poster_path", "popularity", "original_title")
_CAST_ATTRIBUTES = ("profile_path", "popularity", "known_for_department")


def parse_release_date(value: Any) -> date | None:
    """TMDB sends "YYYY-MM-DD", an empty string or null."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _parse_id(payload: dict[str, Any]) -> int | None:
    raw = payload.get("id")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _text(payload: dict[str, Any], *fields: str) -> str:
    for name in fields:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _attributes(payload: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: payload.get(name) for name in fields if payload.get(name) is not None}


def _subject_entity(payload: dict[str, Any], kind: SubjectKind) -> Entity:
    subject_id = _parse_id(payload)
    if subject_id is None:
        raise UnknownServiceError(
            f"Malformed {kind.value} payload: missing id", service_id=SERVICE_ID
        )
    if kind is SubjectKind.PERSON:
        return Entity(
            id=subject_id,
            name=_text(payload, "name") or "Unknown Actor",
            kind=kind,
            attributes=_attributes(payload, _PERSON_ATTRIBUTES),
        )
    return Entity(
        id=subject_id,
        name=_text(payload, "title", "original_title") or "Unknown Movie",
        kind=kind,
        attributes=_attributes(payload, _MOVIE_ATTRIBUTES),
    )


def parse_movie_credit(payload: dict[str, Any]) -> Credit | None:
    """One entry of a person's ``movie_credits.cast``."""
    movie_id = _parse_id(payload)
    if movie_id is None:
        return None
    release_date = parse_release_date(payload.get("release_date"))
    return Credit(
        entity=Entity(
            id=movie_id,
            name=_text(payload, "title", "original_title") or "Untitled",
            kind=SubjectKind.MOVIE,
            attributes=_attributes(payload, _MOVIE_CREDIT_ATTRIBUTES),
        ),
        role=_text(payload, "character") or None,
        release_date=release_date,
        sort_key=float(release_date.toordinal()) if release_date else None,
    )


def parse_cast_credit(payload: dict[str, Any]) -> Credit | None:
    """One entry of a movie's ``credits.cast``."""
    person_id = _parse_id(payload)
    if person_id is None:
        return None
    order = payload.get("order")
    return Credit(
        entity=Entity(
            id=person_id,
            name=_text(payload, "name", "original_name") or "Unknown Actor",
            kind=SubjectKind.PERSON,
            attributes=_attributes(payload, _CAST_ATTRIBUTES),
        ),
        role=_text(payload, "character") or None,
        release_date=None,
        sort_key=float(order) if isinstance(order, (int, float)) and not isinstance(order, bool) else None,
    )


def order_credits(credits: list[Credit]) -> tuple[Credit, ...]:
    """Fold repeated credits per entity and order by sort key, then id."""
    folded: dict[int, Credit] = {}
    for credit in credits:
        existing = folded.get(credit.entity.id)
        folded[credit.entity.id] = (
            credit if existing is None else merge_credits(existing, credit)
        )
    return tuple(
        sorted(
            folded.values(),
            key=lambda c: (c.sort_key is None, c.sort_key or 0.0, c.entity.id),
        )
    )


def parse_person_credits(payload: dict[str, Any]) -> CreditList:
    """Parse ``person/{id}?append_to_response=movie_credits``."""
    subject = _subject_entity(payload, SubjectKind.PERSON)
    cast = (payload.get("movie_credits") or {}).get("cast") or []
    credits = [c for c in (parse_movie_credit(item) for item in cast if isinstance(item, dict)) if c]
    return CreditList(subject=subject, credits=order_credits(credits))


def parse_movie_cast(payload: dict[str, Any]) -> CreditList:
    """Parse ``movie/{id}?append_to_response=credits``."""
    subject = _subject_entity(payload, SubjectKind.MOVIE)
    cast = (payload.get("credits") or {}).get("cast") or []
    credits = [c for c in (parse_cast_credit(item) for item in cast if isinstance(item, dict)) if c]
    return CreditList(subject=subject, credits=order_credits(credits))


def parse_person_search(payload: dict[str, Any]) -> list[Entity]:
    """Parse ``search/person`` results."""
    people: list[Entity] = []
    for item in payload.get("results") or []:
        if not isinstance(item, dict):
            continue
        person_id = _parse_id(item)
        if person_id is None:
            continue
        attributes = _attributes(item, ("profile_path", "popularity", "known_for_department"))
        known_for = [
            _text(entry, "title", "name")
            for entry in item.get("known_for") or []
            if isinstance(entry, dict) and _text(entry, "title", "name")
        ]
        if known_for:
            attributes["known_for"] = known_for
        people.append(
            Entity(
                id=person_id,
                name=_text(item, "name") or "Unknown Actor",
                kind=SubjectKind.PERSON,
                attributes=attributes,
            )
        )
    return people
