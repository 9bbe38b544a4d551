"""Command-line entry point for the stretch progression engine"""
import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from stretch_progress.config import DATA_PATH, LOG_LEVEL, validate_config
from stretch_progress.models.progress import ActivityRecord
from stretch_progress.services.container import init_container
from stretch_progress.storage.file_store import JsonFileProgressStore
from stretch_progress.utils.datetime_helpers import now_local, parse_datetime, to_local

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track stretching streaks, challenges and rewards")
    parser.add_argument("--user", default="local", help="User ID (default: local)")
    parser.add_argument("--data-path", type=Path, default=DATA_PATH, help=f"Data directory (default: {DATA_PATH})")

    subparsers = parser.add_subparsers(dest="command", required=True)

    log_cmd = subparsers.add_parser("log", help="Log a completed stretching session")
    log_cmd.add_argument("--minutes", type=int, required=True, help="Session length in minutes")
    log_cmd.add_argument("--area", required=True, help="Body area stretched (e.g. neck, back)")
    log_cmd.add_argument("--at", help="ISO-8601 time of the session (default: now)")

    subparsers.add_parser("status", help="Show level, streak, challenges and rewards")

    claim_cmd = subparsers.add_parser("claim", help="Claim a completed challenge")
    claim_cmd.add_argument("challenge_id", help="Challenge ID (see status)")

    subparsers.add_parser("freeze", help="Spend a flex save to cover yesterday")

    theme_cmd = subparsers.add_parser("theme", help="Change the app theme")
    theme_cmd.add_argument("theme", choices=["light", "dark"])

    return parser


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    """Execute one CLI command against the JSON file store"""
    store = JsonFileProgressStore(data_path=args.data_path, user_id=args.user)
    container = init_container(store)
    service = container.progression_service

    await service.startup()

    if args.command == "log":
        at = to_local(parse_datetime(args.at)) if args.at else now_local()
        record = ActivityRecord(date=at, duration_minutes=args.minutes, area=args.area)
        return await service.record_session(record)
    if args.command == "status":
        return await service.status()
    if args.command == "claim":
        return await service.claim_challenge(args.challenge_id)
    if args.command == "freeze":
        return await service.apply_freeze()
    if args.command == "theme":
        return await service.set_theme(args.theme)

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    args = build_parser().parse_args(argv)

    try:
        validate_config()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        result = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("success", True) else 1


if __name__ == "__main__":
    raise SystemExit(main())
