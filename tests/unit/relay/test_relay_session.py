"""Tests unitaires — RelaySession (fermeture croisée, erreurs de session).

Streams factices (duck-typing) pour contrôler précisément EOF, erreurs et
blocages sans dépendre du réseau.
"""

from __future__ import annotations

import asyncio

import pytest

from mcp_relay.core.models import SessionState
from mcp_relay.relay import session as session_module
from mcp_relay.relay.session import RelaySession


class _FakeReader:
    def __init__(self, chunks: list[bytes] | None = None, error: BaseException | None = None, block: bool = False) -> None:
        self._chunks = list(chunks or [])
        self._error = error
        self._block = block

    async def read(self, n: int) -> bytes:
        await asyncio.sleep(0)
        if self._chunks:
            return self._chunks.pop(0)
        if self._error is not None:
            raise self._error
        if self._block:
            await asyncio.Event().wait()
        return b""


class _FakeTransport:
    def __init__(self) -> None:
        self.aborted = False

    def abort(self) -> None:
        self.aborted = True


class _FakeWriter:
    def __init__(self, hang_on_close: bool = False) -> None:
        self.data = bytearray()
        self.close_calls = 0
        self.transport = _FakeTransport()
        self._closing = False
        self._hang_on_close = hang_on_close

    def get_extra_info(self, name: str):
        return ("127.0.0.1", 40000) if name == "peername" else None

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        return

    def is_closing(self) -> bool:
        return self._closing

    def close(self) -> None:
        self.close_calls += 1
        self._closing = True

    async def wait_closed(self) -> None:
        if self._hang_on_close:
            await asyncio.Event().wait()


def _session(client_reader, remote_reader, client_writer=None, remote_writer=None) -> RelaySession:
    return RelaySession(
        1,
        client_reader,
        client_writer or _FakeWriter(),
        remote_reader,
        remote_writer or _FakeWriter(),
        buffer_size=1024,
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_client_eof_closes_both_legs_exactly_once():
    session = _session(_FakeReader([b"a", b"b", b"c"]), _FakeReader(block=True))

    error = await asyncio.wait_for(session.run(), timeout=2.0)

    assert error is None
    assert session.state is SessionState.CLOSED
    assert bytes(session.remote_writer.data) == b"abc"
    assert session.client_writer.close_calls == 1
    assert session.remote_writer.close_calls == 1
    assert session.bytes_client_to_remote == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_remote_data_then_eof_reaches_client():
    session = _session(_FakeReader(block=True), _FakeReader([b'{"id":1}\n', b'{"id":2}\n']))

    await asyncio.wait_for(session.run(), timeout=2.0)

    assert bytes(session.client_writer.data) == b'{"id":1}\n{"id":2}\n'
    assert session.client_writer.close_calls == 1
    assert session.bytes_remote_to_client == 18


@pytest.mark.asyncio
@pytest.mark.unit
async def test_connection_reset_is_returned_not_raised():
    session = _session(
        _FakeReader([b"partial"], error=ConnectionResetError("reset by peer")),
        _FakeReader(block=True),
    )

    error = await asyncio.wait_for(session.run(), timeout=2.0)

    assert isinstance(error, ConnectionResetError)
    assert session.error is error
    assert bytes(session.remote_writer.data) == b"partial"
    assert session.client_writer.close_calls == 1
    assert session.remote_writer.close_calls == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_double_close_during_run_is_harmless():
    session = _session(_FakeReader(block=True), _FakeReader(block=True))
    run_task = asyncio.create_task(session.run())
    await asyncio.sleep(0.01)

    await asyncio.gather(session.close(), session.close())
    run_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await run_task

    await session.close()
    assert session.closed
    assert session.client_writer.close_calls == 1
    assert session.remote_writer.close_calls == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_stuck_peer_is_aborted_after_close_timeout(monkeypatch):
    monkeypatch.setattr(session_module, "CLOSE_TIMEOUT", 0.05)
    stuck = _FakeWriter(hang_on_close=True)
    session = _session(_FakeReader([b"x"]), _FakeReader(block=True), remote_writer=stuck)

    await asyncio.wait_for(session.run(), timeout=2.0)

    assert stuck.transport.aborted is True
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unexpected_error_propagates_after_teardown():
    session = _session(_FakeReader(error=RuntimeError("bug")), _FakeReader(block=True))

    with pytest.raises(RuntimeError):
        await asyncio.wait_for(session.run(), timeout=2.0)

    assert session.state is SessionState.CLOSED
    assert session.remote_writer.close_calls == 1


@pytest.mark.unit
def test_to_dict_formats_peer():
    session = _session(_FakeReader(), _FakeReader())
    data = session.to_dict()
    assert data["peer"] == "127.0.0.1:40000"
    assert data["state"] == "active"
    assert data["bytes_client_to_remote"] == 0
