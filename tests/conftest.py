"""
Configuration des tests pytest.
"""
import asyncio
import os
import sys
import time

import pytest

# Ajoute src au path
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, SRC_DIR)

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


def pytest_configure(config):
    """Enregistre les marqueurs utilisés par la suite."""
    config.addinivalue_line("markers", "asyncio: marque un test comme asynchrone")
    config.addinivalue_line("markers", "unit: test unitaire (sans réseau externe)")
    config.addinivalue_line("markers", "e2e: test de bout en bout (sous-processus réels)")


async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    """Attend qu'un prédicat devienne vrai (échoue le test sinon)."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition non atteinte avant le timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    """Retourne l'utilitaire d'attente active `_wait_until`."""
    return _wait_until


@pytest.fixture
def src_env():
    """Environnement permettant `python -m mcp_relay` sans installation."""
    env = dict(os.environ)
    env["PYTHONPATH"] = SRC_DIR + os.pathsep + env.get("PYTHONPATH", "")
    return env


@pytest.fixture
def fake_tcp_server_path():
    return os.path.join(FIXTURES_DIR, "fake_mcp_server_tcp.py")
