from __future__ import annotations

from typing import Any, Callable

from simtrader.broker.base import ExchangeClient
from simtrader.core.exceptions import ConfigError

ExchangeFactory = Callable[..., ExchangeClient]


class ExchangeRegistry:
    """Explicit exchange-name to client-factory map.

    Built by whoever wires the process together and passed down; there is
    no module-level registry.
    """

    def __init__(self, factories: dict[str, ExchangeFactory] | None = None) -> None:
        self._factories: dict[str, ExchangeFactory] = dict(factories or {})

    def register(self, name: str, factory: ExchangeFactory) -> None:
        if name in self._factories:
            raise ValueError(f"Exchange already registered: {name}")
        self._factories[name] = factory

    def create(self, name: str, **kwargs: Any) -> ExchangeClient:
        factory = self._factories.get(name)
        if factory is None:
            raise ConfigError(f"Unsupported exchange: {name}")
        return factory(**kwargs)

    def names(self) -> list[str]:
        return sorted(self._factories)
