#!/usr/bin/env python3

import argparse
import asyncio
import json
import logging
import mimetypes
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO, Tuple

from clipcloud.config import ClipboardSettings, MySQLConfig, RedisConfig, StorageConfig
from clipcloud.database.redis_manager import RedisManager
from clipcloud.errors import ClipboardError
from clipcloud.schema import ClipboardPayloadType
from clipcloud.services import ClipboardCoordinator
from clipcloud.utils.file_manager import FilePayloadStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _print_json(data: Any, out: TextIO) -> None:
    out.write(json.dumps(data, indent=2) + "\n")


def _guess_content_type(file_arg: str) -> str:
    if file_arg == "-":
        return DEFAULT_CONTENT_TYPE
    guessed, _ = mimetypes.guess_type(file_arg)
    return guessed or DEFAULT_CONTENT_TYPE


def _guess_payload_type(content_type: str) -> ClipboardPayloadType:
    if content_type.startswith("image/"):
        return ClipboardPayloadType.IMAGE
    if content_type.startswith("text/"):
        return ClipboardPayloadType.TEXT
    return ClipboardPayloadType.FILE_SET


def _parse_expiry(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 timestamp: {value!r}") from None


async def run_command(args: argparse.Namespace, coordinator: ClipboardCoordinator,
                      out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    command = args.command

    try:
        if command == "add":
            if args.file == "-":
                payload, file_name = sys.stdin.buffer, None
            else:
                path = Path(args.file)
                payload, file_name = path.read_bytes(), path.name
            content_type = args.content_type or _guess_content_type(args.file)
            metadata = await coordinator.add_item(
                args.owner, content_type, payload,
                device_name=args.device_name, file_name=file_name,
                payload_type=args.payload_type or _guess_payload_type(content_type),
                expires_at=args.expires_at, is_encrypted=args.encrypted)
            _print_json(metadata.to_public_dict(), out)

        elif command == "list":
            if args.all:
                items = await coordinator.list_all(args.owner)
            else:
                items = await coordinator.list_recent(args.owner, args.take)
            _print_json([item.to_public_dict() for item in items], out)

        elif command == "get":
            content = await coordinator.get_item(args.owner, args.item_id)
            data = content.read_all()
            if args.output == "-":
                sys.stdout.buffer.write(data)
                sys.stdout.buffer.flush()
            else:
                Path(args.output).write_bytes(data)
                _print_json(content.metadata.to_public_dict(), out)

        elif command == "remove":
            await coordinator.remove_item(args.owner, args.item_id)
            _print_json({"ownerId": args.owner, "itemId": args.item_id, "removed": True}, out)

        elif command in ("pause", "resume"):
            state = await coordinator.set_paused(args.owner, command == "pause")
            _print_json(state.model_dump(mode="json", by_alias=True), out)

        elif command == "state":
            state = await coordinator.get_owner_state(args.owner)
            _print_json(state.model_dump(mode="json", by_alias=True), out)

        elif command == "clear":
            deleted = await coordinator.clear_owner(args.owner)
            _print_json({"ownerId": args.owner, "deletedItems": deleted}, out)

        elif command == "gc":
            collected = await coordinator.collect_garbage(
                args.owner, min_age=timedelta(hours=args.min_age_hours))
            _print_json({"ownerId": args.owner, "collectedBlobs": collected}, out)

    except ClipboardError as e:
        logger.error(f"{e.kind}: {e}")
        return 1
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 1

    return 0


def build_coordinator(args: argparse.Namespace) -> Tuple[ClipboardCoordinator, RedisManager]:
    settings = ClipboardSettings.from_env(env_path=args.env_file)
    redis_manager = RedisConfig.from_env(env_path=args.env_file).create_manager()

    if args.metadata_backend == "mysql":
        metadata_store = MySQLConfig.from_env(env_path=args.env_file).create_store()
    else:
        metadata_store = redis_manager.metadata_store()

    if args.payload_dir is not None:
        payload_store = FilePayloadStore(args.payload_dir)
    else:
        payload_store = StorageConfig.from_env(env_path=args.env_file).create_payload_store()

    coordinator = ClipboardCoordinator(
        metadata_store,
        payload_store,
        redis_manager.owner_state_store(),
        settings=settings,
    )
    return coordinator, redis_manager


async def _run(args: argparse.Namespace) -> int:
    coordinator, redis_manager = build_coordinator(args)
    try:
        return await run_command(args, coordinator)
    finally:
        await coordinator.close()
        await redis_manager.close()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="ClipScape cloud clipboard - manage stored clipboard history"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--metadata-backend",
        choices=["redis", "mysql"],
        default=os.getenv("CLIPBOARD_METADATA_BACKEND", "redis"),
        help="Where item metadata lives (default: redis)"
    )

    parser.add_argument(
        "--payload-dir",
        type=Path,
        default=None,
        help="Directory for payload blobs (default: $CLIPBOARD_PAYLOAD_DIR or ~/.clipscape/payloads)"
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Read settings from this .env file"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Upload a clipboard item")
    add.add_argument("owner")
    add.add_argument("file", nargs="?", default="-",
                     help="File to upload ('-' reads stdin, the default)")
    add.add_argument("-t", "--content-type", default=None,
                     help="Content type (default: guessed from the file name)")
    add.add_argument("--device-name", default=None, help="Source device label")
    add.add_argument("--payload-type", type=ClipboardPayloadType,
                     choices=list(ClipboardPayloadType), default=None,
                     help="Text, FileSet or Image (default: guessed from the content type)")
    add.add_argument("--expires-at", type=_parse_expiry, default=None,
                     help="ISO 8601 expiry recorded with the item")
    add.add_argument("--encrypted", action="store_true",
                     help="Mark the payload as client-side encrypted")

    list_cmd = commands.add_parser("list", help="List an owner's clipboard history")
    list_cmd.add_argument("owner")
    list_cmd.add_argument("-n", "--take", type=int, default=0,
                          help="Number of items (default: configured page size)")
    list_cmd.add_argument("--all", action="store_true", help="List every item")

    get = commands.add_parser("get", help="Download a clipboard item")
    get.add_argument("owner")
    get.add_argument("item_id")
    get.add_argument("-o", "--output", default="-",
                     help="Write the payload here ('-' writes stdout, the default)")

    remove = commands.add_parser("remove", help="Remove a clipboard item")
    remove.add_argument("owner")
    remove.add_argument("item_id")

    for name, help_text in (
        ("pause", "Reject new uploads and removals for an owner"),
        ("resume", "Accept uploads and removals again"),
        ("state", "Show an owner's pause state"),
        ("clear", "Remove every clipboard item of an owner"),
    ):
        commands.add_parser(name, help=help_text).add_argument("owner")

    gc = commands.add_parser("gc", help="Delete orphan payload blobs of an owner")
    gc.add_argument("owner")
    gc.add_argument("--min-age-hours", type=float, default=1.0,
                    help="Only collect blobs older than this (default: 1.0)")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s'
    )

    try:
        return asyncio.run(_run(args))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    except KeyboardInterrupt:
        print("\nStopped")
        return 130


if __name__ == "__main__":
    sys.exit(main())
