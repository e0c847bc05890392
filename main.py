"""
Main command-line interface for pymtc.

This script provides a CLI to interact with a MultiTransport playback server.
"""

import argparse
import asyncio
import logging

from pymtc.client import MultiTransportClient
from pymtc.connection import ConnectionState


async def connect(hostname: str, port: int, poll_interval_ms: int = 0):
    print(f"Connecting to MultiTransport at {hostname}:{port}...")
    client = MultiTransportClient(hostname, port, poll_interval_ms=poll_interval_ms)
    state = await client.async_connect()
    if state is not ConnectionState.CONNECTED:
        print(f"Could not connect ({state.value})")
        client.close()
        return None
    return client


async def show_status(hostname: str, port: int, wait: float):
    """Query and display the transports, tracks and sections of the device."""
    client = await connect(hostname, port)
    if client is None:
        return

    # Player and track lists come back first, section lists follow the tracks
    print("Querying transports, tracks and sections...")
    await asyncio.sleep(wait)

    print("\nTransports:")
    print("-" * 60)
    for player in client.players or ["(no data from device)"]:
        print(f"  {player}")

    print("\nTracks:")
    print("-" * 60)
    for track in client.tracks:
        sections = client.get_sections(track)
        sections_str = ", ".join(sections) if sections else "none"
        print(f"  {track:30s} | Sections: {sections_str}")
    if not client.tracks:
        print("  (no data from device)")
    print("-" * 60)

    client.close()


async def go_to_cue(hostname: str, port: int, args):
    client = await connect(hostname, port)
    if client is None:
        return

    print(f"Sending {args.mode} to {args.player}: {args.track} @ {args.location}...")
    sent = client.go_to_cue(
        args.player,
        args.track,
        args.location,
        command=args.mode,
        transition_seconds=args.transition,
        transition_track=args.transition_track,
        transition_section=args.transition_section,
        transition_label=args.transition_label,
    )
    # Give the transport a moment to flush before closing
    await asyncio.sleep(0.5)
    client.close()
    print("Done" if sent else "Command not sent")


async def transport_command(hostname: str, port: int, player: str, command: str):
    client = await connect(hostname, port)
    if client is None:
        return

    print(f"Sending {command} to {player}...")
    sent = client.transport_command(player, command)
    await asyncio.sleep(0.5)
    client.close()
    print("Done" if sent else "Command not sent")


def main():
    parser = argparse.ArgumentParser(description="Control a MultiTransport playback server")
    parser.add_argument("--host", default="127.0.0.1", help="Server hostname or IP (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=54321, help="MultiTransport event port (default: 54321)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Status command
    status_parser = subparsers.add_parser("status", help="Show transports, tracks and sections")
    status_parser.add_argument("--wait", type=float, default=3.0, help="Seconds to wait for responses")

    # Go to cue command
    cue_parser = subparsers.add_parser("cue", help="Go to a cue or timecode on a track")
    cue_parser.add_argument("player", help="Transport (player) name")
    cue_parser.add_argument("track", help="Track name")
    cue_parser.add_argument("location", help="CUE number (1, 1.2, 1.2.3) or timecode (00:00:00:00)")
    cue_parser.add_argument("--mode", default="playSection", choices=["play", "playSection", "loop"])
    cue_parser.add_argument("--transition", help="Transition time in seconds")
    cue_parser.add_argument("--transition-track", help="Track to use as transition source")
    cue_parser.add_argument("--transition-section", help="Section of the transition track")
    cue_parser.add_argument("--transition-label", help="Transition source as \"Track: Section\"")

    # Transport command
    transport_parser = subparsers.add_parser("transport", help="Send a transport command")
    transport_parser.add_argument("player", help="Transport (player) name")
    transport_parser.add_argument("action", choices=["play", "playSection", "loop", "stop", "pause"])

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)

    if args.command == "status":
        asyncio.run(show_status(args.host, args.port, args.wait))
    elif args.command == "cue":
        asyncio.run(go_to_cue(args.host, args.port, args))
    elif args.command == "transport":
        asyncio.run(transport_command(args.host, args.port, args.player, args.action))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
