from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, model_validator

from ragagent.core.exceptions import ToolingConfigError
from ragagent.models.tool_model import ToolCategory, ToolMetadata
from ragagent.tools.base import Tool


# Built-in tool name -> (default category, default tags)
BUILTIN_TOOL_DEFAULTS: Dict[str, Tuple[ToolCategory, List[str]]] = {
    "rag_search": (ToolCategory.RETRIEVAL, ["documents", "search", "rag", "semantic"]),
    "github_search_repositories": (ToolCategory.EXTERNAL_SEARCH, ["github", "repositories", "code"]),
    "github_search_code": (ToolCategory.EXTERNAL_SEARCH, ["github", "code", "examples"]),
    "memory": (ToolCategory.MEMORY, ["memory", "context", "history", "preferences"]),
}


def resolve_tooling_config_path(path: str) -> Path:
    """Resolve a tooling config path.

    Absolute paths must point at an existing file; relative paths are tried
    against the current working directory, then the project root.
    """
    if not path or not str(path).strip():
        raise ToolingConfigError("Tooling config path is empty")

    raw = os.path.expanduser(os.path.expandvars(str(path)))
    candidate = Path(raw)
    if candidate.is_absolute():
        if not candidate.is_file():
            raise ToolingConfigError(f"Tooling config file not found. Path='{path}'. Tried: {candidate}")
        return candidate

    tried: List[Path] = []

    cwd_candidate = (Path.cwd() / candidate).resolve()
    tried.append(cwd_candidate)
    if cwd_candidate.is_file():
        return cwd_candidate

    # parents: core -> ragagent -> src -> <repo>
    repo_root = Path(__file__).resolve().parents[3]
    repo_candidate = (repo_root / candidate).resolve()
    tried.append(repo_candidate)
    if repo_candidate.is_file():
        return repo_candidate

    tried_str = ", ".join(str(p) for p in tried)
    raise ToolingConfigError(f"Tooling config file not found. Path='{path}'. Tried: {tried_str}")


class BuiltinToolConfig(BaseModel):
    """Per-tool overrides for one built-in tool. Unset fields keep the built-in defaults."""

    name: str = Field(..., min_length=1)
    enabled: bool = True
    category: Optional[ToolCategory] = None
    tags: Optional[List[str]] = None
    requires_auth: Optional[bool] = None
    version: Optional[str] = None

    @model_validator(mode="after")
    def _normalize_and_validate(self) -> "BuiltinToolConfig":
        name = self.name.strip()
        if name not in BUILTIN_TOOL_DEFAULTS:
            raise ValueError(
                f"Unknown built-in tool '{name}'. Known tools: {sorted(BUILTIN_TOOL_DEFAULTS)}"
            )
        object.__setattr__(self, "name", name)

        if self.tags is not None:
            tags = [t.strip() for t in self.tags if t and t.strip()]
            object.__setattr__(self, "tags", tags)
        return self


class ToolingConfig(BaseModel):
    """Top-level tooling config loaded from YAML."""

    enabled: bool = True
    tools: List[BuiltinToolConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_uniqueness(self) -> "ToolingConfig":
        seen: set = set()
        for t in self.tools:
            if t.name in seen:
                raise ValueError(f"Duplicate tool entry: {t.name}")
            seen.add(t.name)
        return self

    def entry(self, name: str) -> Optional[BuiltinToolConfig]:
        for t in self.tools:
            if t.name == name:
                return t
        return None

    def is_enabled(self, name: str) -> bool:
        """Tools not listed in the file stay enabled."""
        if not self.enabled:
            return False
        entry = self.entry(name)
        return entry.enabled if entry is not None else True


def default_tooling_config() -> ToolingConfig:
    return ToolingConfig()


def load_tooling_config(path: Optional[str], *, env_expand: bool = True) -> ToolingConfig:
    """Load tooling configuration from a YAML file.

    The YAML may hold {enabled, tools} at the top level or nested under a
    `tooling:` key. `${ENV}` references are expanded. Without a path every
    built-in tool is enabled with its defaults.
    """
    if not path:
        return default_tooling_config()

    p = resolve_tooling_config_path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ToolingConfigError(f"Failed to read tooling config '{p}': {e}") from e
    if env_expand:
        raw = os.path.expandvars(raw)

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ToolingConfigError(f"Failed to parse tooling YAML: {e}") from e

    if not isinstance(data, dict):
        raise ToolingConfigError("Tooling YAML root must be a mapping/object")

    if "tooling" in data and isinstance(data["tooling"], dict):
        data = data["tooling"]

    try:
        return ToolingConfig.model_validate(data)
    except ValueError as e:
        raise ToolingConfigError(f"Invalid tooling config: {e}") from e


def builtin_metadata(tool: Tool, cfg: ToolingConfig) -> ToolMetadata:
    category, tags = BUILTIN_TOOL_DEFAULTS.get(tool.name, (ToolCategory.CUSTOM, []))
    metadata = ToolMetadata(
        name=tool.name,
        description=tool.description,
        category=category,
        tags=list(tags),
    )

    entry = cfg.entry(tool.name)
    if entry is None:
        return metadata

    overrides: Dict[str, Any] = {}
    if entry.category is not None:
        overrides["category"] = entry.category
    if entry.tags is not None:
        overrides["tags"] = entry.tags
    if entry.requires_auth is not None:
        overrides["requires_auth"] = entry.requires_auth
    if entry.version is not None:
        overrides["version"] = entry.version
    return metadata.model_copy(update=overrides)


def tooling_snapshot(cfg: ToolingConfig) -> Dict[str, Any]:
    """A small, stable summary for logs/health endpoints."""
    return {
        "enabled": cfg.enabled,
        "configured_tool_count": len(cfg.tools),
        "enabled_builtin_tools": [n for n in BUILTIN_TOOL_DEFAULTS if cfg.is_enabled(n)],
        "tools": [
            {
                "name": t.name,
                "enabled": t.enabled,
                "category": t.category.value if t.category else None,
                "tags": t.tags,
                "requires_auth": t.requires_auth,
                "version": t.version,
            }
            for t in cfg.tools
        ],
    }
