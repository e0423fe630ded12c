"""Plugin API definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from rowcrypt.kernel.logging import JsonlLogger, NullLogger


@dataclass
class PluginContext:
    config: dict[str, Any]
    get_capability: Callable[[str], Any]
    logger: Callable[[str], None]
    events: JsonlLogger | NullLogger = field(default_factory=NullLogger)

    def require_capability(self, name: str) -> Any:
        capability = self.get_capability(name)
        if capability is None:
            raise KeyError(f"Missing capability: {name}")
        return capability


class PluginBase:
    """Base class for storage plugins.

    A plugin is built from a ``PluginContext`` and publishes its objects
    through ``capabilities()``. Async setup, where a plugin needs it, happens
    in a plugin-specific coroutine after construction.
    """

    def __init__(self, plugin_id: str, context: PluginContext) -> None:
        self.plugin_id = plugin_id
        self.context = context

    def capabilities(self) -> dict[str, Any]:
        return {}

    def close(self) -> None:
        return None
