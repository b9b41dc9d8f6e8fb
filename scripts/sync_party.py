#!/usr/bin/env python3
"""Sync Studio — headless Sync Party participant.

Connects to a running Sync Studio server, creates or joins a room, and logs
what the local player does as the room state changes.  Handy for checking a
room from a second terminal.

Usage:
    python scripts/sync_party.py create                # host a new room
    python scripts/sync_party.py join A2B7C9           # join as guest
    python scripts/sync_party.py resume                # rejoin the saved room
    python scripts/sync_party.py create --play <id>    # host and start a track
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

REPO_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(REPO_ROOT))

from sync_studio.services.player.player import Player  # noqa: E402
from sync_studio.services.shared.config import get_config  # noqa: E402
from sync_studio.services.shared.logging import get_logger, setup_logging  # noqa: E402
from sync_studio.services.sync.api_client import HttpMusicLibrary, StudioAPIClient  # noqa: E402
from sync_studio.services.sync.client import SyncClient, SyncSettings  # noqa: E402
from sync_studio.services.sync.errors import SyncError  # noqa: E402
from sync_studio.services.sync.local_state import LocalState  # noqa: E402

logger = get_logger("cli.sync_party")

# ── ANSI colours ──────────────────────────────────────────────────────────────
GREEN  = "\033[92m"
YELLOW = "\033[93m"
RED    = "\033[91m"
RESET  = "\033[0m"
BOLD   = "\033[1m"


def _describe(player: Player) -> str:
    track = player.current_track
    if track is None:
        return "idle"
    state = "playing" if player.is_playing else "paused"
    return f"{track.title} [{track.id}] {state} @ {player.current_time:.1f}s"


async def run(args: argparse.Namespace) -> int:
    cfg = get_config()
    settings = SyncSettings.from_config(cfg)
    server = args.server or cfg.get("client.server_url", "http://localhost:8000")
    state_file = args.state_file or cfg.get("client.state_file")
    logger.debug("Server %s, state file %s", server, state_file)

    async with StudioAPIClient(server, timeout=settings.request_timeout) as api:
        player = Player(library_source=HttpMusicLibrary(api))
        client = SyncClient(api, player, LocalState(state_file), settings)
        try:
            await player.refresh_library()
        except SyncError as exc:
            print(f"{RED}✗{RESET}  Cannot reach {server}: {exc}")
            return 1

        code: Optional[str]
        if args.command == "create":
            code = await client.create_and_connect()
        elif args.command == "join":
            code = args.code if await client.join_and_connect(args.code) else None
        else:
            code = client.code if await client.resume() else None

        if code is None:
            print(f"{RED}✗{RESET}  {client.error or 'No saved room to resume'}")
            return 1

        role = "host" if client.is_host else "guest"
        print(f"{GREEN}✓{RESET}  Room {BOLD}{code}{RESET} ({role}, you are {client.participant_id})")

        if args.play and client.is_host:
            track = player.find_track(args.play)
            if track is None:
                print(f"{YELLOW}⚠{RESET}  Track {args.play} not in library")
            else:
                player.play_track(track)

        last = None
        try:
            while client.is_connected:
                line = _describe(player)
                if line != last:
                    print(f"   {line}")
                    last = line
                await asyncio.sleep(settings.poll_interval)
        finally:
            if client.is_connected and args.leave_on_exit:
                await client.leave()
            else:
                client.detach()

        if client.error:
            print(f"{YELLOW}⚠{RESET}  {client.error}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless Sync Party participant")
    parser.add_argument("command", choices=["create", "join", "resume"])
    parser.add_argument("code", nargs="?", help="Room code (for join)")
    parser.add_argument("--server", help="Server base URL")
    parser.add_argument("--state-file", help="Where to persist participant id and room")
    parser.add_argument("--play", metavar="TRACK_ID", help="Host only: start this track")
    parser.add_argument("--leave-on-exit", action="store_true",
                        help="Leave (and, as host, close) the room on Ctrl-C")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    if args.command == "join" and not args.code:
        parser.error("join needs a room code")

    setup_logging(level=args.log_level)
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
