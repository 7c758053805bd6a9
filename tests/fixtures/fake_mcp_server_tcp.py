#!/usr/bin/env python3
"""Fake MCP TCP server for relay/supervisor verification.

Purpose:
- Provide a deterministic line-delimited JSON-RPC server on TCP, so the relay
  and the supervisor can be tested without the real MCP server.

Behavior:
- Listens on 127.0.0.1:$MCP_PORT
- Reads JSON-RPC messages (one per line) and replies one line per request
- tools/list returns a minimal tool list, anything else a -32601 error
- On SIGTERM, writes "terminated" to $FAKE_SERVER_MARKER (if set) and exits 0
"""

from __future__ import annotations

import asyncio
import json
import os
import signal
import sys


def _reply(req: object) -> dict[str, object]:
    req_id = req.get("id") if isinstance(req, dict) else None
    method = req.get("method") if isinstance(req, dict) else None
    if method == "tools/list":
        return {"jsonrpc": "2.0", "id": req_id, "result": {"tools": [{"name": "get_tables"}]}}
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": -32601, "message": "Method not found"}}


async def _handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    while True:
        line = await reader.readline()
        if not line:
            break
        try:
            req = json.loads(line)
        except json.JSONDecodeError:
            req = None
        writer.write((json.dumps(_reply(req)) + "\n").encode("utf-8"))
        await writer.drain()
    writer.close()


async def main() -> int:
    port = int(os.environ.get("MCP_PORT", "3000"))
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGTERM, stop.set)

    server = await asyncio.start_server(_handle, "127.0.0.1", port)
    sys.stdout.write(f"listening on {port}\n")
    sys.stdout.flush()

    await stop.wait()
    server.close()

    marker = os.environ.get("FAKE_SERVER_MARKER")
    if marker:
        with open(marker, "w", encoding="utf-8") as f:
            f.write("terminated")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
