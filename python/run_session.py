#!/usr/bin/env python3
"""
Drive one mock interview session from the terminal.

Loads configuration, builds the backend adapters, runs the session
controller and prints every session event. Finalized transcript entries
are appended to a text file when ``--transcript-file`` is given.

Usage:
    # Start the mock backend first:
    python mock_backend.py --seed-interview

    # Then drive the seeded interview:
    python run_session.py --session-id iv_... --always-listening --submit-after 30
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Final, Optional

import aiofiles

from interview_platform import build_api_clients, load_client_config
from mock_interview import (
    InterviewClientError,
    IntroFlagStore,
    LoadError,
    SessionController,
    SessionEvent,
    SessionEventPublisher,
    SessionEventType,
)

logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS: Final[int] = 0
EXIT_LOAD_ERROR: Final[int] = 1
EXIT_CONFIG_ERROR: Final[int] = 2
EXIT_SESSION_ERROR: Final[int] = 3
EXIT_INTERRUPTED: Final[int] = 130


async def append_transcript_line(path: Path, event: SessionEvent) -> None:
    data = event.data
    async with aiofiles.open(path, "a", encoding="utf-8") as f:
        await f.write(f"[{data.get('timestamp')}][{data.get('speaker')}] {data.get('text')}\n")


async def print_events(
    queue: asyncio.Queue[SessionEvent],
    ended: asyncio.Event,
    transcript_file: Optional[Path],
) -> None:
    """Print events until cancelled; flag the end of the session."""
    while True:
        event = await queue.get()
        if event.event_type == SessionEventType.PARTIAL_TRANSCRIPT and not event.content:
            continue
        print(f"[{event.event_type.value}] {event.content}")
        if event.event_type == SessionEventType.TRANSCRIPT_ENTRY and transcript_file is not None:
            await append_transcript_line(transcript_file, event)
        if event.event_type == SessionEventType.SESSION_ENDED:
            ended.set()


async def run_session(args: argparse.Namespace) -> int:
    try:
        config = load_client_config()
    except RuntimeError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    clients = build_api_clients(config)
    publisher = SessionEventPublisher()
    queue = await publisher.subscribe()
    ended = asyncio.Event()
    transcript_file = Path(args.transcript_file).expanduser() if args.transcript_file else None
    printer = asyncio.create_task(print_events(queue, ended, transcript_file))

    controller = SessionController(
        interviews=clients.interviews,
        execution=clients.execution,
        evaluations=clients.evaluations,
        intro_source=clients.introductions,
        flags=IntroFlagStore(config.state_dir),
        transport_factory=clients.voice_transport,
        publisher=publisher,
        timings=config.timings(),
    )

    try:
        async with controller:
            try:
                session = await controller.load(args.session_id)
            except LoadError as e:
                logger.error("%s", e)
                return EXIT_LOAD_ERROR

            logger.info(
                "Session %s: %s (%s), %s remaining",
                session.session_id,
                session.question.title or "untitled",
                session.session_kind.value,
                controller.timer.format_remaining(),
            )
            await controller.start()
            if args.always_listening:
                await controller.voice.enable_always_listening()

            if args.submit_after is not None:
                await asyncio.sleep(args.submit_after)
                outcome = await controller.submit()
                if not outcome.ended and outcome.report is not None:
                    logger.info(
                        "Submit kept the session open: %d/%d tests passed",
                        outcome.report.summary.passed,
                        outcome.report.summary.total,
                    )
                    outcome = await controller.give_up()
            elif args.give_up_after is not None:
                await asyncio.sleep(args.give_up_after)
                outcome = await controller.give_up()
            else:
                await ended.wait()
                outcome = controller.outcome

            if outcome is not None:
                logger.info(
                    "Session ended: status=%s evaluation=%s",
                    outcome.status.value,
                    outcome.evaluation_id or outcome.evaluation_error or "not requested",
                )
            return EXIT_SUCCESS
    except InterviewClientError as e:
        logger.error("Session error: %s", e)
        return EXIT_SESSION_ERROR
    finally:
        await asyncio.sleep(0)
        printer.cancel()
        await asyncio.gather(printer, return_exceptions=True)
        await publisher.unsubscribe(queue)
        await clients.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run one mock interview session against the configured backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    INTERVIEW_API_URL      Backend base URL (default: http://localhost:3001)
    INTERVIEW_WS_URL       Realtime voice base URL (default: derived from API URL)
    INTERVIEW_AUTH_TOKEN   Bearer token
    INTERVIEW_STATE_DIR    Intro-played flag directory (default: ~/.mock_interview)
        """,
    )
    parser.add_argument("--session-id", required=True, help="Interview id to load")
    parser.add_argument(
        "--always-listening",
        action="store_true",
        help="Enable continuous voice activity detection after connecting",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--submit-after", type=float, default=None, help="Submit after N seconds")
    group.add_argument("--give-up-after", type=float, default=None, help="Give up after N seconds")
    parser.add_argument("--transcript-file", default=None, help="Append finalized utterances here")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=("debug", "info", "warning", "error"),
        help="Logging level (default: info)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run_session(args))
    except KeyboardInterrupt:
        logger.info("Session interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
