"""
Tests E2E: `python -m mcp_relay` lancé en sous-processus.

Ces tests vérifient:
- L'abandon du superviseur (code 1) quand l'enfant plante en boucle
- La chaîne complète: superviseur -> faux serveur MCP TCP -> relay -> sonde
- La transmission de SIGTERM à l'enfant et la sortie propre (code 0)
- L'échec du relay (code 1) quand le port local est déjà pris
"""
import asyncio
import signal
import socket
import sys
import time

import pytest

from mcp_relay.config.settings import RelayConfig
from mcp_relay.diagnostics import probe_tcp
from mcp_relay.relay.server import TcpRelay

TIMEOUT = 15.0


def _free_port() -> int:
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


async def _wait_for_port(port: int, timeout: float = TIMEOUT) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            _, writer = await asyncio.open_connection("127.0.0.1", port)
        except OSError:
            if time.monotonic() > deadline:
                raise AssertionError(f"port {port} jamais ouvert")
            await asyncio.sleep(0.05)
            continue
        writer.close()
        return


async def _spawn_cli(args, env):
    return await asyncio.create_subprocess_exec(
        sys.executable, "-m", "mcp_relay", *args,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )


@pytest.fixture
def empty_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("", encoding="utf-8")
    return str(path)


@pytest.mark.e2e
class TestSuperviseCli:
    """Commande `supervise`."""

    @pytest.mark.asyncio
    async def test_gives_up_with_exit_code_one(self, src_env, empty_config):
        proc = await _spawn_cli(
            ["supervise", "--config", empty_config, "--max-restarts", "1", "--restart-delay", "0",
             "--", sys.executable, "-c", "import sys; sys.exit(2)"],
            src_env,
        )
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=TIMEOUT)

        assert proc.returncode == 1, stderr.decode()
        assert "Abandon" in stderr.decode()

    @pytest.mark.asyncio
    async def test_full_chain_and_sigterm_forwarding(self, src_env, empty_config, fake_tcp_server_path, tmp_path):
        server_port = _free_port()
        marker = tmp_path / "terminated.txt"
        proc = await _spawn_cli(
            ["supervise", "--config", empty_config, "--port", str(server_port),
             "--env", f"FAKE_SERVER_MARKER={marker}",
             "--", sys.executable, fake_tcp_server_path],
            src_env,
        )
        relay = None
        try:
            await _wait_for_port(server_port)

            relay = TcpRelay(RelayConfig(local_host="127.0.0.1", local_port=0,
                                         remote_host="127.0.0.1", remote_port=server_port))
            await relay.start()
            host, port = relay.address

            result = await probe_tcp(host, port, timeout=5.0)
            assert result.payload["result"]["tools"][0]["name"] == "get_tables"

            error = await probe_tcp(host, port, method="unknown/method", timeout=5.0)
            assert error.is_jsonrpc_error

            proc.send_signal(signal.SIGTERM)
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=TIMEOUT)

            assert proc.returncode == 0, stderr.decode()
            assert marker.read_text(encoding="utf-8") == "terminated"
        finally:
            if relay is not None:
                await relay.stop()
            if proc.returncode is None:
                proc.kill()
                await proc.wait()


@pytest.mark.e2e
class TestRelayCli:
    """Commande `relay`."""

    @pytest.mark.asyncio
    async def test_relay_forwards_then_stops_on_sigint(self, src_env, empty_config):
        async def echo(reader, writer):
            writer.write(await reader.readline())
            await writer.drain()
            writer.close()

        remote = await asyncio.start_server(echo, "127.0.0.1", 0)
        remote_port = remote.sockets[0].getsockname()[1]
        local_port = _free_port()
        proc = await _spawn_cli(
            ["relay", "--config", empty_config, "--local-port", str(local_port),
             "--remote-host", "127.0.0.1", "--remote-port", str(remote_port)],
            src_env,
        )
        try:
            await _wait_for_port(local_port)
            reader, writer = await asyncio.open_connection("127.0.0.1", local_port)
            writer.write(b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n')
            await writer.drain()
            line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            assert line == b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n'
            writer.close()

            proc.send_signal(signal.SIGINT)
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=TIMEOUT)
            assert proc.returncode == 0, stderr.decode()
        finally:
            remote.close()
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

    @pytest.mark.asyncio
    async def test_busy_local_port_exits_with_one(self, src_env, empty_config):
        busy = socket.create_server(("127.0.0.1", 0))
        try:
            proc = await _spawn_cli(
                ["relay", "--config", empty_config, "--local-port", str(busy.getsockname()[1]),
                 "--remote-host", "127.0.0.1"],
                src_env,
            )
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=TIMEOUT)
            assert proc.returncode == 1
            assert "Erreur du serveur proxy" in stderr.decode()
        finally:
            busy.close()
