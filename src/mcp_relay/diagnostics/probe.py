"""src.mcp_relay.diagnostics.probe

Sondes de diagnostic pour vérifier qu'un serveur MCP répond, en direct ou
à travers le relay.

- probe_tcp: envoie UNE requête JSON-RPC terminée par "\\n" et lit UNE ligne.
- probe_http: GET /health puis POST /mcp (tools/list) via httpx.

Seules ces sondes utilisent le découpage par lignes; le relay, lui, ne
découpe jamais le flux.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.constants import DEFAULT_PROBE_TIMEOUT, DEFAULT_PROBE_METHOD, PROBE_STREAM_LIMIT
from ..core.exceptions import ProbeError


@dataclass(frozen=True)
class ProbeResult:
    target: str
    latency_ms: float
    raw: str
    payload: object | None
    status_code: int | None = None

    @property
    def is_jsonrpc_error(self) -> bool:
        return isinstance(self.payload, dict) and "error" in self.payload

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "latency_ms": round(self.latency_ms, 1),
            "status_code": self.status_code,
            "payload": self.payload,
            "raw": None if self.payload is not None else self.raw,
        }


def build_jsonrpc_request(method: str, *, req_id: int = 1, params: dict[str, object] | None = None) -> dict[str, object]:
    return {"jsonrpc": "2.0", "id": req_id, "method": method, "params": params or {}}


def _try_decode(raw: str) -> object | None:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


async def probe_tcp(
    host: str,
    port: int,
    *,
    method: str = DEFAULT_PROBE_METHOD,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> ProbeResult:
    """Envoie une requête JSON-RPC sur TCP et retourne la première ligne reçue.

    Raises:
        ProbeError: connexion impossible, timeout, ou fermeture sans réponse
    """

    target = f"tcp://{host}:{port}"
    started = time.perf_counter()

    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port, limit=PROBE_STREAM_LIMIT),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise ProbeError(f"Timeout de connexion ({timeout:g}s)", target=target, error_type="timeout") from e
    except OSError as e:
        raise ProbeError(f"Erreur de connexion: {e}", target=target, error_type="connect") from e

    try:
        request = build_jsonrpc_request(method)
        writer.write((json.dumps(request, ensure_ascii=False) + "\n").encode("utf-8"))
        await writer.drain()

        try:
            line = await asyncio.wait_for(reader.readline(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProbeError(f"Aucune réponse en {timeout:g}s", target=target, error_type="timeout") from e
        except (ValueError, asyncio.LimitOverrunError) as e:
            raise ProbeError(f"Réponse trop volumineuse: {e}", target=target, error_type="limit") from e
        except OSError as e:
            raise ProbeError(f"Connexion interrompue: {e}", target=target, error_type="reset") from e
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    if not line:
        raise ProbeError("Connexion fermée sans réponse", target=target, error_type="eof")

    raw = line.decode("utf-8", errors="replace").strip()
    return ProbeResult(
        target=target,
        latency_ms=(time.perf_counter() - started) * 1000,
        raw=raw,
        payload=_try_decode(raw),
    )


async def probe_http(
    base_url: str,
    *,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ProbeResult]:
    """Interroge /health puis /mcp (tools/list) sur un serveur MCP HTTP.

    Args:
        base_url: ex. "http://192.168.40.197:3000"
        transport: transport httpx optionnel (tests)

    Raises:
        ProbeError: erreur réseau ou statut HTTP >= 400
    """

    results: list[ProbeResult] = []
    base_url = base_url.rstrip("/")

    async with httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport) as client:
        for method, path, body in (
            ("GET", "/health", None),
            ("POST", "/mcp", build_jsonrpc_request(DEFAULT_PROBE_METHOD)),
        ):
            target = f"{base_url}{path}"
            started = time.perf_counter()
            try:
                response = await client.request(method, path, json=body)
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise ProbeError(f"Timeout HTTP ({timeout:g}s)", target=target, error_type="timeout") from e
            except httpx.HTTPStatusError as e:
                raise ProbeError(
                    f"Statut HTTP {e.response.status_code}", target=target, error_type="http_status"
                ) from e
            except httpx.HTTPError as e:
                raise ProbeError(f"Erreur HTTP: {e}", target=target, error_type="connect") from e

            results.append(
                ProbeResult(
                    target=target,
                    latency_ms=(time.perf_counter() - started) * 1000,
                    raw=response.text,
                    payload=_try_decode(response.text),
                    status_code=response.status_code,
                )
            )

    return results
