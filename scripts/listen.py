#!/usr/bin/env python3
"""
Terminal client: connect to a Transmit server and print channel messages.
Reconnection and heartbeat detection are handled by the client itself.
Usage:
  python scripts/listen.py --channel orders
  python scripts/listen.py --url http://127.0.0.1:3333 --channel a --channel b
  python scripts/listen.py --max-attempts 0   # give up on the first disconnect
"""
import argparse
import asyncio
import json
import signal
import sys

from transmit_client import ConnectionState, Settings, Transmit
from transmit_client.utils.logging import setup_logging

DEFAULT_CHANNELS = ["global"]


def print_message(channel: str):
    def handler(payload):
        text = json.dumps(payload)
        print(f"[{channel}]", text[:200] + "..." if len(text) > 200 else text, flush=True)
    return handler


async def run(config: Settings, channels: list[str], **client_options) -> int:
    """
    Print messages until interrupted or until reconnection is abandoned.
    Returns the process exit code.
    """
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    signals = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            signals.append(sig)
        except (NotImplementedError, RuntimeError):
            pass

    transmit = Transmit(
        settings=config,
        on_reconnect_attempt=lambda attempt: print(f"[RECONNECT] attempt {attempt}", flush=True),
        on_reconnect_failed=stop.set,
        on_subscription=lambda channel: print(f"[SUBSCRIBED] {channel}", flush=True),
        on_subscribe_failed=lambda channel, result: print(
            f"[SUBSCRIBE FAILED] {channel}: {result.describe()}", file=sys.stderr, flush=True
        ),
        **client_options,
    )
    transmit.on(ConnectionState.CONNECTED, lambda _: print(f"Connected as {transmit.uid}", flush=True))
    transmit.on(ConnectionState.DISCONNECTED, lambda _: print("[DISCONNECT]", flush=True))

    # Joins wait for the first connection; closing the client releases them
    joins = []
    try:
        async with transmit:
            print(f"Connecting to {config.BASE_URL} ...", flush=True)
            for channel in channels:
                subscription = transmit.subscription(channel)
                subscription.on_message(print_message(channel))
                joins.append(asyncio.create_task(subscription.create()))
            await stop.wait()
        await asyncio.gather(*joins)
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)

    return 1 if transmit.connection.reconnect.exhausted else 0


def main():
    parser = argparse.ArgumentParser(description="Print messages from Transmit channels")
    parser.add_argument("--url", help="Server base URL (default: TRANSMIT_BASE_URL)")
    parser.add_argument("--channel", action="append", dest="channels", help="Channel to join (repeatable)")
    parser.add_argument("--max-attempts", type=int, help="Reconnect attempts before giving up")
    parser.add_argument("--heartbeat-timeout", type=float, help="Seconds without heartbeat before reconnecting")
    args = parser.parse_args()

    overrides = {}
    if args.url:
        overrides["BASE_URL"] = args.url
    if args.max_attempts is not None:
        overrides["MAX_RECONNECT_ATTEMPTS"] = args.max_attempts
    if args.heartbeat_timeout is not None:
        overrides["HEARTBEAT_TIMEOUT"] = args.heartbeat_timeout

    config = Settings(**overrides)
    setup_logging(config)

    try:
        sys.exit(asyncio.run(run(config, args.channels or DEFAULT_CHANNELS)))
    except KeyboardInterrupt:
        print("\nBye.")


if __name__ == "__main__":
    main()
