import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from restview.api.models import ErrorResponse, PageResponse
from restview.bootstrap import build_service, build_shape_registry, load_entity_base
from restview.config.loader import RestViewSettings, load_settings
from restview.core.serialization import to_plain
from restview.database.paging import PageSpec
from restview.database.sqlite_client import session_context
from restview.errors import RestViewError
from restview.security.context import set_current_user
from restview.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _parse_filters(pairs: Optional[List[str]]) -> Dict[str, str]:
    filters: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid filter '{pair}': expected key=value")
        filters[key.strip()] = value
    return filters


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def cmd_shapes(args: argparse.Namespace, settings: RestViewSettings) -> None:
    shapes = build_shape_registry(settings)
    names = shapes.available_shapes()
    if args.format == "json":
        _print_json(
            {
                name: [f.name for f in shapes.shape_fields(name) or []]
                for name in names
            }
        )
        return
    if not names:
        print("No shapes registered.")
        return
    print(f"{'Shape':<30} {'Class':<40} {'Fields'}")
    print("-" * 100)
    for name in names:
        shape_type = shapes.shape_for(name)
        fields = ", ".join(f.name for f in shapes.shape_fields(name) or [])
        print(f"{name:<30} {shape_type.__qualname__:<40} {fields}")


def cmd_query(args: argparse.Namespace, settings: RestViewSettings) -> None:
    filters = _parse_filters(args.filter)
    page_spec = PageSpec(page=args.page, size=args.size, sort=args.sort or [])
    base = load_entity_base(settings)
    with session_context(settings.database.sqlite_path, base) as session:
        service = build_service(settings, session, base)
        page = service.find_all(args.entity, filters, page_spec, args.shape)
        response = PageResponse(
            items=[to_plain(item) for item in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
            total_pages=page.total_pages,
        )
        _print_json(response.model_dump(mode="json"))


def cmd_get(args: argparse.Namespace, settings: RestViewSettings) -> None:
    base = load_entity_base(settings)
    with session_context(settings.database.sqlite_path, base) as session:
        service = build_service(settings, session, base)
        _print_json(to_plain(service.get_by_id(args.entity, args.id, args.shape)))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="restview - generic shaped views over SQLAlchemy entities")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to restview.config.yaml (default: ./restview.config.yaml if present)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--user",
        type=str,
        default=None,
        help="Current user id for security scoping",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # shapes command
    shapes_parser = subparsers.add_parser("shapes", help="List registered shapes")
    shapes_parser.add_argument(
        "--format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    shapes_parser.set_defaults(func=cmd_shapes)

    # query command
    query_parser = subparsers.add_parser("query", help="Filter and page entities of one type")
    query_parser.add_argument("entity", type=str, help="Entity name (kebab-case, e.g. order-line)")
    query_parser.add_argument(
        "--filter",
        "-f",
        action="append",
        metavar="KEY=VALUE",
        help="Filter entry; repeatable (e.g. -f search=foo -f ownerIds=1,2)",
    )
    query_parser.add_argument("--shape", type=str, default=None, help="Shape name (default: entity default shape)")
    query_parser.add_argument("--page", type=int, default=0, help="Zero-based page index (default: 0)")
    query_parser.add_argument("--size", type=int, default=20, help="Page size (default: 20)")
    query_parser.add_argument(
        "--sort",
        action="append",
        help='Sort order; repeatable (e.g. --sort name,desc or --sort -name)',
    )
    query_parser.set_defaults(func=cmd_query)

    # get command
    get_parser = subparsers.add_parser("get", help="Fetch one entity by id")
    get_parser.add_argument("entity", type=str, help="Entity name (kebab-case)")
    get_parser.add_argument("id", type=str, help="Entity id")
    get_parser.add_argument("--shape", type=str, default=None, help="Shape name (default: entity default shape)")
    get_parser.set_defaults(func=cmd_get)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = load_settings(args.config)
        if args.user is not None:
            with set_current_user(args.user):
                args.func(args, settings)
        else:
            args.func(args, settings)
    except FileNotFoundError as e:
        logger.error("Config file not found: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except RestViewError as e:
        logger.error("Error running command '%s': %s", args.command, e)
        response = ErrorResponse.from_error(e)
        print(f"Error [{response.code.value}]: {response.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        logger.error("Invalid arguments for command '%s': %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
