"""
actorsync command line entry point.

    python main.py compare 287 819
    python main.py compare 550 680 --movies
    python main.py credits 287
    python main.py search "brad pitt"
"""

import argparse
import asyncio
import sys

from loguru import logger

from actorsync.comparison.engine import ComparisonEngine
from actorsync.comparison.types import SubjectKind, Timeline
from actorsync.container import build_container
from actorsync.services.errors import ServiceError
from actorsync.settings import global_settings


def configure_logging(debug: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")


def format_timeline(timeline: Timeline) -> str:
    lines = [
        f"{timeline.subject_a.name} (A) vs {timeline.subject_b.name} (B): "
        f"{len(timeline.shared_ids)} shared"
    ]
    for bucket in timeline.buckets:
        lines.append(f"\n{bucket.year if bucket.year is not None else 'Undated'}")
        for item in bucket.items:
            marker = "*" if item.is_shared else " "
            roles = " | ".join(
                f"{label}: {role}"
                for label, role in (("A", item.role_a), ("B", item.role_b))
                if role
            )
            lines.append(
                f"  {marker} [{item.subject.value:>4}] {item.entity.name}"
                + (f" ({roles})" if roles else "")
            )
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    async with build_container(global_settings) as container:
        engine: ComparisonEngine = container.engine
        try:
            if args.command == "compare":
                kind = SubjectKind.MOVIE if args.movies else SubjectKind.PERSON
                timeline = await engine.compare(args.subject_a, args.subject_b, kind)
                print(format_timeline(timeline))
            elif args.command == "credits":
                kind = SubjectKind.MOVIE if args.movie else SubjectKind.PERSON
                credit_list = await engine.fetch_credit_list(args.subject_id, kind)
                print(f"{credit_list.subject.name}: {len(credit_list)} credits")
                for credit in credit_list.credits:
                    year = credit.year if credit.year is not None else "----"
                    role = f" as {credit.role}" if credit.role else ""
                    print(f"  {year}  {credit.entity.name}{role}")
            elif args.command == "search":
                for person in await container.source.search_people(args.query):
                    known_for = ", ".join(person.attributes.get("known_for", []))
                    print(f"  {person.id:>8}  {person.name}" + (f"  ({known_for})" if known_for else ""))
        except ServiceError as e:
            logger.error(f"{e.kind.value}: {e}")
            return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="actorsync", description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command", required=True)

    compare = sub.add_parser("compare", help="compare two subjects on one timeline")
    compare.add_argument("subject_a")
    compare.add_argument("subject_b")
    compare.add_argument("--movies", action="store_true", help="compare two movies' casts")

    credits = sub.add_parser("credits", help="list one subject's credits")
    credits.add_argument("subject_id")
    credits.add_argument("--movie", action="store_true", help="the subject is a movie")

    search = sub.add_parser("search", help="search people by name")
    search.add_argument("query")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(global_settings.debug)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
