"""
Timeline construction - merges two credit lists into year buckets.

Ordering is fixed: buckets ascend by year with the undated bucket last, and
items inside a bucket ascend by entity id. The result depends only on the
two credit lists, so compare(A, B) and compare(B, A) differ only in labels.
"""

from collections import defaultdict
from datetime import date

from actorsync.comparison.types import (
    Credit,
    CreditList,
    Side,
    SubjectKind,
    Timeline,
    TimelineItem,
    YearBucket,
)


def index_credits(credit_list: CreditList) -> dict[int, Credit]:
    """Map entity id to credit, folding repeated credits for the same entity into one."""
    index: dict[int, Credit] = {}
    for credit in credit_list.credits:
        existing = index.get(credit.entity.id)
        if existing is None:
            index[credit.entity.id] = credit
        else:
            index[credit.entity.id] = merge_credits(existing, credit)
    return index


def merge_credits(first: Credit, second: Credit) -> Credit:
    """Combine two credits of one subject on the same entity."""
    roles = [r for r in (first.role, second.role) if r]
    role = " / ".join(dict.fromkeys(roles)) or None
    keys = [k for k in (first.sort_key, second.sort_key) if k is not None]
    return first.model_copy(
        update={
            "role": role,
            "release_date": earliest(first.release_date, second.release_date),
            "sort_key": min(keys) if keys else None,
        }
    )


def earliest(*dates: date | None) -> date | None:
    known = [d for d in dates if d is not None]
    return min(known) if known else None


def build_timeline(
    credits_a: CreditList,
    credits_b: CreditList,
    kind: SubjectKind = SubjectKind.PERSON,
) -> Timeline:
    """
    Merge two credit lists into a Timeline.

    A shared entity contributes a single item labelled Side.BOTH carrying
    both roles; when the two records disagree on the release date the
    earliest known date wins.
    """
    index_a = index_credits(credits_a)
    index_b = index_credits(credits_b)
    shared_ids = frozenset(index_a) & frozenset(index_b)

    by_year: dict[int | None, list[TimelineItem]] = defaultdict(list)
    for entity_id in index_a.keys() | index_b.keys():
        credit_a = index_a.get(entity_id)
        credit_b = index_b.get(entity_id)

        if credit_a is not None and credit_b is not None:
            item = TimelineItem(
                subject=Side.BOTH,
                entity=credit_a.entity,
                is_shared=True,
                release_date=earliest(credit_a.release_date, credit_b.release_date),
                role_a=credit_a.role,
                role_b=credit_b.role,
            )
        elif credit_a is not None:
            item = TimelineItem(
                subject=Side.A,
                entity=credit_a.entity,
                is_shared=False,
                release_date=credit_a.release_date,
                role_a=credit_a.role,
            )
        else:
            item = TimelineItem(
                subject=Side.B,
                entity=credit_b.entity,
                is_shared=False,
                release_date=credit_b.release_date,
                role_b=credit_b.role,
            )

        year = item.release_date.year if item.release_date else None
        by_year[year].append(item)

    buckets = [
        YearBucket(
            year=year,
            items=tuple(sorted(by_year[year], key=lambda item: item.entity.id)),
        )
        for year in sorted(by_year, key=_year_order)
    ]

    return Timeline(
        kind=kind,
        subject_a=credits_a.subject,
        subject_b=credits_b.subject,
        buckets=tuple(buckets),
        shared_ids=shared_ids,
    )


def _year_order(year: int | None) -> tuple[int, int]:
    # Undated bucket goes last
    return (1, 0) if year is None else (0, year)
