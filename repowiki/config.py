"""Configuration loading and persistence for repowiki (.repowiki.yml)."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError
from .models import DEFAULT_DOCS_ROOT, AgentType, SourceDocMapping

CONFIG_FILENAME = ".repowiki.yml"
DEFAULT_CONTENT_DIR = "zh/content"
DEFAULT_META_DIR = "zh/meta"
DEFAULT_CUSTOM_PRIORITY = 100
DEFAULT_AGENT_TIMEOUT = 300.0


@dataclass
class DocsConfig:
    """Location of the documentation tree inside the workspace."""

    root: str = DEFAULT_DOCS_ROOT
    content_dir: str = DEFAULT_CONTENT_DIR
    meta_dir: str = DEFAULT_META_DIR


@dataclass
class CustomAgentConfig:
    """User-defined agent command."""

    command: str
    template: str
    priority: int = DEFAULT_CUSTOM_PRIORITY


@dataclass
class AgentConfig:
    """Agent selection settings."""

    preferred: Optional[AgentType] = None
    timeout: float = DEFAULT_AGENT_TIMEOUT
    custom: Optional[CustomAgentConfig] = None


@dataclass
class RepoWikiConfig:
    """Represents the settings defined in .repowiki.yml."""

    root: Path
    docs: DocsConfig = field(default_factory=DocsConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    mappings: List[SourceDocMapping] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)


def load_config(config_path: Path) -> RepoWikiConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = resolve_config_path(config_path)
    data = _read_config(config_file) if config_file.exists() else {}
    return parse_config(data, root=config_file.parent)


def parse_config(data: Dict[str, Any], *, root: Path) -> RepoWikiConfig:
    """Build the typed configuration view from raw YAML data."""
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    docs_data = _as_dict(data.get("docs"))
    docs = DocsConfig(
        root=_as_str(docs_data.get("root")) or DEFAULT_DOCS_ROOT,
        content_dir=_as_str(docs_data.get("content_dir")) or DEFAULT_CONTENT_DIR,
        meta_dir=_as_str(docs_data.get("meta_dir")) or DEFAULT_META_DIR,
    )

    agent_data = _as_dict(data.get("agent"))
    timeout = _as_float(agent_data.get("timeout"))
    if timeout is not None and timeout <= 0:
        raise ConfigError("agent.timeout must be a positive number of seconds")
    agent = AgentConfig(
        preferred=_as_agent_type(agent_data.get("preferred")),
        timeout=timeout if timeout is not None else DEFAULT_AGENT_TIMEOUT,
    )
    custom_data = _as_dict(agent_data.get("custom"))
    command = _as_str(custom_data.get("command"))
    template = _as_str(custom_data.get("template"))
    if command and template:
        priority = _as_int(custom_data.get("priority"))
        agent.custom = CustomAgentConfig(
            command=command,
            template=template,
            priority=priority if priority is not None else DEFAULT_CUSTOM_PRIORITY,
        )

    return RepoWikiConfig(
        root=root,
        docs=docs,
        agent=agent,
        mappings=_parse_mappings(data.get("mappings")),
        exclude_patterns=_as_str_list(data.get("exclude_patterns")),
    )


class ConfigStore:
    """Key/value view over .repowiki.yml with get-with-default and persist-on-update."""

    def __init__(self, path: Path, data: Dict[str, Any] | None = None) -> None:
        self.path = resolve_config_path(path)
        self._data: Dict[str, Any] = data if data is not None else {}

    @classmethod
    def load(cls, path: Path) -> "ConfigStore":
        config_file = resolve_config_path(path)
        data = _read_config(config_file) if config_file.exists() else {}
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")
        return cls(config_file, data)

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def config(self) -> RepoWikiConfig:
        return parse_config(self._data, root=self.root)

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def update(self, key: str, value: Any) -> None:
        """Set a dotted key (``None`` removes it) and write the file."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value
        self.persist()

    def mappings(self) -> List[SourceDocMapping]:
        return _parse_mappings(self._data.get("mappings"))

    def save_mappings(self, mappings: Sequence[SourceDocMapping]) -> None:
        self.update(
            "mappings",
            [
                {"source": m.source_path, "doc": m.doc_path, "title": m.title}
                for m in mappings
            ],
        )

    def persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            yaml.safe_dump(self._data, allow_unicode=True, sort_keys=False),
            encoding="utf-8",
        )


def resolve_config_path(config_path: Path) -> Path:
    config_path = Path(config_path).expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _parse_mappings(value: Any) -> List[SourceDocMapping]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError("mappings must be a list of {source, doc, title} entries")
    mappings: List[SourceDocMapping] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ConfigError(f"mappings[{index}] must be a mapping")
        source = _as_str(entry.get("source"))
        doc = _as_str(entry.get("doc"))
        if not source or not doc:
            raise ConfigError(f"mappings[{index}] requires both 'source' and 'doc'")
        title = _as_str(entry.get("title")) or Path(doc).stem
        mappings.append(SourceDocMapping(source_path=source, doc_path=doc, title=title))
    return mappings


def _as_agent_type(value: Any) -> Optional[AgentType]:
    text = _as_str(value)
    if not text:
        return None
    try:
        return AgentType(text.strip().lower())
    except ValueError as exc:
        choices = ", ".join(t.value for t in AgentType)
        raise ConfigError(f"Unknown agent '{text}'. Expected one of: {choices}") from exc


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "AgentConfig",
    "CONFIG_FILENAME",
    "ConfigStore",
    "CustomAgentConfig",
    "DocsConfig",
    "RepoWikiConfig",
    "load_config",
    "parse_config",
    "resolve_config_path",
]
