#!/usr/bin/env python3
"""Follow a civilian's active rescue request from the command line.

Recovers the most recent active request, opens the status and vehicle
position streams and prints every session change until the request
finishes (or Ctrl-C).

Usage
-----
Set environment variables and run::

    export RESQ_GRAPHQL_URL="https://resq.example.org/graphql"
    export RESQ_AUTH_TOKEN="..."
    python scripts/watch_request.py --civilian-id 42

Options::

    --civilian-id N      Civilian whose active request is followed
    --json               Print snapshots as JSON lines
    --exit-on-reset      Stop once the finished session has been reset
    -v, --verbose        Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyresq import RequestLifecycleController, ResqClient, ResqConfig  # noqa: E402
from pyresq.state.session import RequestSession  # noqa: E402


def _describe(session: RequestSession) -> str:
    parts = [f"request={session.request_id}", f"status={session.status_text or session.status.value}"]
    vehicle = session.vehicle
    if vehicle.code or vehicle.plate_number:
        parts.append(f"vehicle={vehicle.code or '?'} ({vehicle.plate_number or 'no plate'})")
    marker = session.vehicle_marker
    if marker is not None:
        parts.append(f"at={marker.lat:.5f},{marker.lng:.5f}")
    if session.picked_location is not None and session.picked_location.address:
        parts.append(f"to={session.picked_location.address!r}")
    return "  ".join(parts)


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Follow the active rescue request of one civilian.",
    )
    parser.add_argument("--civilian-id", type=int, required=True, help="Civilian id")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print snapshots as JSON lines")
    parser.add_argument("--exit-on-reset", action="store_true", help="Stop after the session resets")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = ResqConfig.from_env()
    finished = asyncio.Event()
    seen_request = False

    def _print(session: RequestSession) -> None:
        nonlocal seen_request
        if args.json_mode:
            record = {"time": datetime.now(UTC).isoformat(), "session": session.model_dump(mode="json")}
            print(json.dumps(record), flush=True)
        else:
            print(f"[{datetime.now(UTC).strftime('%H:%M:%S')}] {_describe(session)}", flush=True)
        if session.request_id is not None:
            seen_request = True
        elif seen_request and args.exit_on_reset:
            finished.set()

    async with ResqClient(config) as client:
        controller = RequestLifecycleController(client, civilian_id=args.civilian_id, config=config)
        controller.add_listener(_print)
        async with controller:
            if controller.session.request_id is None:
                print(f"No active request for civilian {args.civilian_id}", file=sys.stderr)
                return
            await finished.wait()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
