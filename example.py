"""
Example usage of pymtc library.

This script connects to a MultiTransport server, waits for the catalog to be
polled, prints it and jumps the first transport to cue 1 of the first track.
"""

import asyncio
import logging

from pymtc import ConnectionState, MultiTransportClient
from pymtc.listener import LoggingListener


async def run():
    client = MultiTransportClient("127.0.0.1", 54321, poll_interval_ms=5000)
    client.register_listener(LoggingListener(logging.getLogger("example")))

    if await client.async_connect() is not ConnectionState.CONNECTED:
        client.close()
        return

    await asyncio.sleep(2)
    print(f"Transports: {client.players}")
    print(f"Tracks: {client.tracks}")
    print(f"Sections: {client.section_labels()}")

    if client.players and client.tracks:
        client.go_to_cue(client.players[0], client.tracks[0], "1", transition_seconds=1)
        await asyncio.sleep(0.5)

    client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run())
