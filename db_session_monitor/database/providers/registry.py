"""
Statistics Provider Registry.

This module provides a registry mapping database engine names to provider
factories. A fresh provider is created for every Connection, binding the
engine variant for the Connection's lifetime.

Author: DB Session Monitor
Version: 0.1.0
"""

import logging
from typing import Callable, Dict, List, Any

from ...exceptions import UnsupportedEngineError
from .base import StatsProvider

ProviderFactory = Callable[[], StatsProvider]


class ProviderRegistry:
    """Registry for statistics providers."""

    def __init__(self):
        self._factories: Dict[str, ProviderFactory] = {}
        self._logger = logging.getLogger(__name__)

    def register_provider(self, engine: str, factory: ProviderFactory) -> None:
        """Register a provider factory (usually a StatsProvider subclass) for an engine."""
        engine = str(getattr(engine, 'value', engine)).lower()
        self._factories[engine] = factory
        self._logger.debug(f"Registered statistics provider {getattr(factory, '__name__', factory)} for engine {engine}")

    def get_provider(self, engine: str, database_name: str = None) -> StatsProvider:
        """
        Create a provider for an engine.

        Raises:
            UnsupportedEngineError: when no provider is registered for the engine
        """
        key = str(getattr(engine, 'value', engine)).lower()
        factory = self._factories.get(key)
        if factory is None:
            raise UnsupportedEngineError(
                key,
                database_name=database_name,
                available_engines=self.list_registered_engines()
            )
        return factory()

    def is_engine_supported(self, engine: str) -> bool:
        """Check if an engine is supported."""
        return str(getattr(engine, 'value', engine)).lower() in self._factories

    def list_registered_engines(self) -> List[str]:
        """List all registered database engines."""
        return sorted(self._factories.keys())

    def get_registry_status(self) -> Dict[str, Any]:
        """Get the current status of the registry."""
        return {
            'registered_engines': self.list_registered_engines(),
            'providers': {
                engine: getattr(factory, '__name__', repr(factory))
                for engine, factory in self._factories.items()
            }
        }


def _auto_register_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """Register the built-in providers."""
    from .mysql import MySQLStatsProvider
    from .postgresql import PostgreSQLStatsProvider

    registry.register_provider(MySQLStatsProvider.engine, MySQLStatsProvider)
    registry.register_provider(PostgreSQLStatsProvider.engine, PostgreSQLStatsProvider)
    return registry


default_registry = _auto_register_providers(ProviderRegistry())
