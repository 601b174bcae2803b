"""
Shared fixtures: an in-memory database backend driven through a fake
statistics provider registered in a dedicated ProviderRegistry.
"""

import asyncio
from typing import Dict, Optional

import pytest

from db_session_monitor.config import DatabaseConfig, MonitorConfig, PoolConfig
from db_session_monitor.database.pool import ConnectionPool
from db_session_monitor.database.providers.base import StatsProvider
from db_session_monitor.database.providers.registry import ProviderRegistry
from db_session_monitor.database.types import HandleStats
from db_session_monitor.exceptions import DialError


class FakeHandle:
    """Driver handle stand-in."""

    def __init__(self, name: str):
        self.name = name
        self.closed = False
        self.broken = False
        # Number of successful pings left; None means unlimited
        self.ping_budget: Optional[int] = None


class FakeBackend:
    """Scriptable state of the fake database servers."""

    def __init__(self):
        self.unreachable = set()
        self.fail_connects: Dict[str, int] = {}
        self.connect_calls: Dict[str, int] = {}
        self.stats: Dict[str, Dict[str, int]] = {}
        self.query_fails = set()
        self.query_delay: Dict[str, float] = {}
        self.close_fails = set()
        self.handle_stats_fails = set()
        self.handles: Dict[str, list] = {}

    def set_stats(self, name: str, active=0, idle=0, idle_in_transaction=0, waiting=0, total=None):
        self.stats[name] = {
            'active': active,
            'idle': idle,
            'idle_in_transaction': idle_in_transaction,
            'inactive': idle + idle_in_transaction,
            'waiting': waiting,
            'total': active + idle + idle_in_transaction if total is None else total,
        }

    def break_handles(self, name: str) -> None:
        for handle in self.handles.get(name, []):
            handle.broken = True


class FakeProvider(StatsProvider):
    """StatsProvider over a FakeBackend."""

    engine = "fake"

    def __init__(self, backend: FakeBackend):
        super().__init__()
        self.backend = backend

    async def connect(self, config, pool_config):
        backend = self.backend
        backend.connect_calls[config.name] = backend.connect_calls.get(config.name, 0) + 1
        await asyncio.sleep(0)

        if config.name in backend.unreachable:
            raise DialError(f"{config.name} is unreachable", host=config.host, port=config.port)
        if backend.fail_connects.get(config.name, 0) > 0:
            backend.fail_connects[config.name] -= 1
            raise DialError(f"{config.name} refused the connection", host=config.host, port=config.port)

        handle = FakeHandle(config.name)
        backend.handles.setdefault(config.name, []).append(handle)
        return handle

    async def ping(self, handle):
        if handle.closed or handle.broken:
            raise RuntimeError("server has gone away")
        if handle.ping_budget is not None:
            if handle.ping_budget <= 0:
                raise RuntimeError("server has gone away")
            handle.ping_budget -= 1

    async def fetch_session_stats(self, handle):
        delay = self.backend.query_delay.get(handle.name)
        if delay:
            await asyncio.sleep(delay)
        if handle.name in self.backend.query_fails:
            raise RuntimeError("permission denied for relation pg_stat_activity")
        return dict(self.backend.stats.get(handle.name, {}))

    def handle_stats(self, handle):
        if handle.name in self.backend.handle_stats_fails:
            raise RuntimeError("handle stats unavailable")
        return HandleStats(open=2, idle=1, in_use=1, max=10)

    async def close(self, handle):
        handle.closed = True
        if handle.name in self.backend.close_fails:
            raise RuntimeError("close failed")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def registry(backend):
    """Registry serving fake providers for both supported engines."""
    registry = ProviderRegistry()
    registry.register_provider("postgresql", lambda: FakeProvider(backend))
    registry.register_provider("mysql", lambda: FakeProvider(backend))
    return registry


@pytest.fixture
def pool_config():
    return PoolConfig(backoff_initial=0.001, backoff_max=0.004, health_check_interval=0.01)


@pytest.fixture
async def pool(pool_config, registry):
    pool = ConnectionPool(pool_config, registry=registry)
    yield pool
    if not pool._closed:
        await pool.close()


def make_db(name: str, type: str = "postgresql", **kwargs) -> DatabaseConfig:
    return DatabaseConfig(name=name, type=type, host=f"{name}.db.local", **kwargs)


def make_config(*names: str, **sections) -> MonitorConfig:
    """Build a valid MonitorConfig for the given database names."""
    data = {
        'databases': [{'name': name, 'type': 'postgresql', 'host': f"{name}.db.local"} for name in names],
        'slack': {'webhook_url': 'https://hooks.slack.test/services/T000/B000/XXX'},
        'pool': {'backoff_initial': 0.001, 'backoff_max': 0.004},
    }
    for key, value in sections.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return MonitorConfig.model_validate(data)


@pytest.fixture
def db_factory():
    return make_db


@pytest.fixture
def config_factory():
    return make_config
