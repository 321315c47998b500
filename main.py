import argparse
import asyncio
import datetime as dt
import logging

from templebuddy.config import load_settings
from templebuddy.commands import apply_default, compare, refresh_directory, set_default, show_nearby
from templebuddy.domain import TempleBuddyError, normalize_facility_id


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _parse_day(raw: str) -> dt.date:
    try:
        return dt.date.fromisoformat(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {raw!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="TempleBuddy: temple directory and appointment comparison")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    refresh = sub.add_parser("refresh", help="Refresh the facility directory if it is stale")
    refresh.add_argument("--force", action="store_true", help="Refetch every facility, ignore the TTL")

    near = sub.add_parser("nearby", help="List the closest facilities to one facility")
    near.add_argument("facility_id")
    near.add_argument("--count", type=int, default=None)

    cmp_ = sub.add_parser("compare", help="Compare open appointments of several facilities")
    cmp_.add_argument("facility_ids", nargs="+")
    cmp_.add_argument("--date", type=_parse_day, default=None, help="YYYY-MM-DD, defaults to today")
    cmp_.add_argument("--with-nearby", action="store_true", help="Also compare the closest facilities of the first id")

    default = sub.add_parser("set-default", help="Remember a facility as the default")
    default.add_argument("facility_id")

    sub.add_parser("apply-default", help="Switch the session to the remembered facility")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    _setup_logging(args.verbose)
    settings = load_settings()

    try:
        if args.command == "refresh":
            asyncio.run(refresh_directory(settings, force=args.force))
        elif args.command == "nearby":
            show_nearby(settings, normalize_facility_id(args.facility_id), count=args.count)
        elif args.command == "compare":
            ids = [normalize_facility_id(i) for i in args.facility_ids]
            asyncio.run(compare(settings, ids, day=args.date, with_nearby=args.with_nearby))
        elif args.command == "set-default":
            set_default(settings, normalize_facility_id(args.facility_id))
        elif args.command == "apply-default":
            asyncio.run(apply_default(settings))
        return 0

    except TempleBuddyError as e:
        # No traceback: type and message are enough here.
        logging.getLogger(__name__).error("%s failed (%s: %s)", args.command, type(e).__name__, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
