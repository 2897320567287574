import argparse
import json
import logging
import sys
from datetime import datetime

from vocaltasks.config import settings
from vocaltasks.sentry import flush as sentry_flush
from vocaltasks.sentry import init_sentry, set_tag


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_command(args: argparse.Namespace) -> int:
    from vocaltasks.services.errors import InternalInvariantFailure
    from vocaltasks.services.heuristics import HeuristicExtractor
    from vocaltasks.services.llm_client import ProviderConfig
    from vocaltasks.services.note_parser import NoteParser, get_note_parser
    from vocaltasks.services.timezone import TimezoneService, get_timezone_service

    text = " ".join(args.text)

    try:
        timezone_service = (
            TimezoneService(args.timezone) if args.timezone else get_timezone_service()
        )
        reference = (
            timezone_service.localize(datetime.fromisoformat(args.reference))
            if args.reference
            else timezone_service.now()
        )
    except InternalInvariantFailure as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Error: invalid --reference value: {exc}", file=sys.stderr)
        return 2

    set_tag("timezone", timezone_service.default_timezone)

    if args.offline:
        result = HeuristicExtractor().extract(text, reference)
    elif args.timezone:
        parser = NoteParser(
            config=ProviderConfig.from_settings(settings),
            timezone_service=timezone_service,
        )
        result = parser.parse(text, reference=reference)
    else:
        result = get_note_parser().parse(text, reference=reference)

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


def check_command(args: argparse.Namespace) -> int:
    from vocaltasks.services.llm_client import LLMProvider, ProviderConfig

    config = ProviderConfig.from_settings(settings)

    print("Voice Tasks Configuration Check\n")

    checks = [
        ("Gemini API Key", settings.has_gemini),
        ("OpenAI API Key", settings.has_openai),
        ("Sentry DSN", settings.has_sentry),
    ]
    for name, configured in checks:
        status = "OK" if configured else "MISSING"
        symbol = "+" if configured else "-"
        print(f"  [{symbol}] {name}: {status}")

    print()
    print(f"  Timezone: {settings.app_timezone}")
    if config.is_configured:
        print(f"  Provider: {config.provider.value} (model {config.model})")
        if config.provider == LLMProvider.OPENAI:
            print(f"  Endpoint: {config.openai_base_url}")
    else:
        print("  Provider: none, heuristic parsing only")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Turn French voice notes into tasks")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    parse_parser = subparsers.add_parser("parse", help="Parse a note and print it as JSON")
    parse_parser.add_argument(
        "text", nargs="+", help="Transcribed note, e.g. 'appeler Paul demain 14h'"
    )
    parse_parser.add_argument("--timezone", help="IANA timezone overriding APP_TIMEZONE")
    parse_parser.add_argument(
        "--reference", help="ISO datetime to resolve relative dates against (default: now)"
    )
    parse_parser.add_argument(
        "--offline", action="store_true", help="Skip the LLM and use heuristics only"
    )

    subparsers.add_parser("check", help="Check configuration")

    args = parser.parse_args(argv)

    setup_logging()

    # Initialize Sentry for error tracking (disabled if no DSN configured)
    init_sentry(
        dsn=settings.sentry_dsn if settings.has_sentry else None,
        environment=settings.sentry_environment,
    )

    try:
        if args.command == "parse":
            exit_code = parse_command(args)
        elif args.command == "check":
            exit_code = check_command(args)
        else:
            parser.print_help()
            exit_code = 1
    finally:
        # Flush any pending Sentry events before exit
        sentry_flush(timeout=2.0)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
