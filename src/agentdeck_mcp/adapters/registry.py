"""Capability-keyed registry of transcript adapters."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .base import REQUIRED_METHODS, AgentAdapter, BaseAgentAdapter
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .gemini import GeminiAdapter

logger = logging.getLogger(__name__)

_TRANSCRIPTLESS_TYPES = ("cursor", "github-copilot", "pi", "terminal")


class AdapterRegistrationError(ValueError):
    """Raised when an adapter does not satisfy the registry contract."""


class AdapterRegistry:
    """Maps agent types to adapters; registrations are validated eagerly."""

    def __init__(self, adapters: Iterable[AgentAdapter] = ()) -> None:
        self._adapters: dict[str, AgentAdapter] = {}
        self._by_type: dict[str, AgentAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: AgentAdapter) -> None:
        adapter_id = getattr(adapter, "id", None)
        if not isinstance(adapter_id, str) or not adapter_id.strip():
            raise AdapterRegistrationError(f"Adapter {adapter!r} has no id")
        missing = [name for name in REQUIRED_METHODS if not callable(getattr(adapter, name, None))]
        if missing:
            raise AdapterRegistrationError(
                f"Adapter '{adapter_id}' is missing required methods: {', '.join(missing)}"
            )
        if adapter_id in self._adapters:
            raise AdapterRegistrationError(f"Adapter '{adapter_id}' is already registered")

        agent_types = [adapter_id, *getattr(adapter, "agent_types", ())]
        normalized = {agent_type.strip().lower() for agent_type in agent_types if agent_type}
        conflicts = sorted(agent_type for agent_type in normalized if agent_type in self._by_type)
        if conflicts:
            raise AdapterRegistrationError(
                f"Adapter '{adapter_id}' conflicts on agent types: {', '.join(conflicts)}"
            )

        self._adapters[adapter_id] = adapter
        for agent_type in normalized:
            self._by_type[agent_type] = adapter
        logger.debug("Registered adapter", extra={"adapter": adapter_id, "agent_types": sorted(normalized)})

    def by_agent_type(self, agent_type: str | None) -> AgentAdapter | None:
        if not agent_type:
            return None
        return self._by_type.get(agent_type.strip().lower())

    def get(self, adapter_id: str) -> AgentAdapter | None:
        return self._adapters.get(adapter_id)

    def all(self) -> list[AgentAdapter]:
        return list(self._adapters.values())

    def __contains__(self, agent_type: str) -> bool:
        return self.by_agent_type(agent_type) is not None


def default_registry(home: Path | None = None) -> AdapterRegistry:
    """Return a registry populated with the built-in adapters."""

    adapters: list[AgentAdapter] = [
        ClaudeAdapter(home=home),
        CodexAdapter(home=home),
        GeminiAdapter(home=home),
    ]
    adapters.extend(BaseAgentAdapter(agent_type, home=home) for agent_type in _TRANSCRIPTLESS_TYPES)
    return AdapterRegistry(adapters)


__all__ = ["AdapterRegistrationError", "AdapterRegistry", "default_registry"]
