"""Agent discovery, priority selection and the active-agent slot."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from ..config import ConfigStore, CustomAgentConfig
from ..logging import get_logger
from ..models import AgentAvailability, AgentType
from ..prompting import PromptBuilder
from ..validators import OutputValidator
from .base import AgentProvider
from .process import AgentProcess
from .providers import BUILTIN_PROVIDERS, CustomProvider


class AgentRegistry:
    """Knows every provider, which of them are installed and which one is active.

    Built-in providers keep their declaration order, which also breaks
    priority ties. A custom provider is appended whenever the configuration
    defines one; preference and custom settings are re-read from the store on
    every call so edits made through the CLI take effect immediately.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        providers: Optional[Iterable[AgentProvider]] = None,
        process: AgentProcess | None = None,
        prompt_builder: PromptBuilder | None = None,
        validator: OutputValidator | None = None,
    ) -> None:
        self.store = store
        self.logger = get_logger("agents.registry")
        self.process = process or AgentProcess(timeout=store.config.agent.timeout)
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.validator = validator or OutputValidator()
        if providers is not None:
            self._builtin: List[AgentProvider] = list(providers)
        else:
            self._builtin = [
                provider_cls(
                    process=self.process,
                    prompt_builder=self.prompt_builder,
                    validator=self.validator,
                )
                for provider_cls in BUILTIN_PROVIDERS
            ]
        self._custom: Optional[CustomProvider] = None
        self._custom_settings: Optional[CustomAgentConfig] = None
        self._available: Dict[AgentType, AgentAvailability] = {}
        self._active: Optional[AgentProvider] = None

    @property
    def active(self) -> Optional[AgentProvider]:
        return self._active

    @property
    def available(self) -> List[AgentAvailability]:
        """Providers found by the last detection, in provider order."""
        return [record for record in self._available.values() if record.available]

    def providers(self) -> List[AgentProvider]:
        providers = list(self._builtin)
        custom = self._custom_provider()
        if custom is not None:
            providers.append(custom)
        return providers

    def get(self, agent_type: AgentType) -> Optional[AgentProvider]:
        for provider in self.providers():
            if provider.type is agent_type:
                return provider
        return None

    async def detect_available(self) -> List[AgentAvailability]:
        """Probe every provider and replace the known-available set."""
        self._available = {}
        records: List[AgentAvailability] = []
        for provider in self.providers():
            installed = await provider.probe()
            version = await provider.version() if installed else None
            record = AgentAvailability(
                type=provider.type,
                name=provider.name,
                available=installed,
                priority=provider.priority,
                version=version,
            )
            self._available[provider.type] = record
            records.append(record)
            if installed:
                suffix = f" ({version})" if version else ""
                self.logger.info("✓ %s available%s", provider.name, suffix)
            else:
                self.logger.info("✗ %s not found", provider.name)

        if self._active is not None and not self._is_available(self._active.type):
            self.logger.debug("Active agent %s is no longer available", self._active.name)
        return records

    async def select_best(self) -> Optional[AgentProvider]:
        """Make the preferred, else the highest-priority, available provider active."""
        if not self._available:
            await self.detect_available()

        candidates = [
            provider for provider in self.providers() if self._is_available(provider.type)
        ]
        if not candidates:
            self.logger.warning("No supported agent CLI was found on PATH")
            return None

        preferred = self.store.config.agent.preferred
        if preferred is not None:
            for provider in candidates:
                if provider.type is preferred:
                    self._active = provider
                    self.logger.info("Using preferred agent %s", provider.name)
                    return provider
            self.logger.info("Preferred agent %s is not available", preferred.value)

        # sorted() is stable, so equal priorities keep provider order.
        best = sorted(candidates, key=lambda provider: provider.priority)[0]
        self._active = best
        self.logger.info("Using agent %s", best.name)
        return best

    def set_active(self, agent_type: AgentType) -> bool:
        """Switch to ``agent_type`` when it was detected; otherwise keep the current one."""
        if not self._is_available(agent_type):
            self.logger.warning("Agent %s is not available", agent_type.value)
            return False
        provider = self.get(agent_type)
        if provider is None:
            return False
        self._active = provider
        self.logger.info("Active agent set to %s", provider.name)
        return True

    def _is_available(self, agent_type: AgentType) -> bool:
        record = self._available.get(agent_type)
        return record is not None and record.available

    def _custom_provider(self) -> Optional[CustomProvider]:
        settings = self.store.config.agent.custom
        if settings is None:
            self._forget_custom()
            return None
        if self._custom is None or settings != self._custom_settings:
            self._forget_custom()
            self._custom = CustomProvider(
                settings.command,
                settings.template,
                priority=settings.priority,
                process=self.process,
                prompt_builder=self.prompt_builder,
                validator=self.validator,
            )
            self._custom_settings = settings
        return self._custom

    def _forget_custom(self) -> None:
        # A rebuilt or removed custom command has not been probed yet.
        self._available.pop(AgentType.CUSTOM, None)
        if self._active is not None and self._active is self._custom:
            self._active = None
        self._custom = None
        self._custom_settings = None


__all__ = ["AgentRegistry"]
