"""
Permission settings.

A YAML file restricting which commands may run and which docs they may
touch::

    docs: [all]            # or a list of doc ids
    commands: [docs, find] # or [all]
    operations:            # optional, per resource
      pages: [read]

"all" is the wildcard in both lists.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError

WILDCARD = "all"


@dataclass
class Settings:
    docs: list[str] = field(default_factory=lambda: [WILDCARD])
    commands: list[str] = field(default_factory=lambda: [WILDCARD])
    operations: Optional[dict[str, list[str]]] = None
    path: Optional[Path] = None

    def is_command_allowed(self, command: str) -> bool:
        return WILDCARD in self.commands or command in self.commands

    def is_doc_allowed(self, doc_id: str) -> bool:
        return WILDCARD in self.docs or doc_id in self.docs

    def is_operation_allowed(self, resource: str, operation: str) -> bool:
        if not self.operations:
            return True
        allowed = self.operations.get(resource)
        if allowed is None:
            return True
        return operation in allowed


def _string_list(value, key: str, path: Path) -> list[str]:
    if value is None:
        return [WILDCARD]
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list in settings file: {path}")
    return [str(v) for v in value]


def load_settings(path: Path | str) -> Settings:
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Settings file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in settings file: {path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file must contain a mapping: {path}")

    operations = raw.get("operations")
    if operations is not None:
        if not isinstance(operations, dict):
            raise ConfigError(f"'operations' must be a mapping in settings file: {path}")
        operations = {
            str(resource): _string_list(ops, f"operations.{resource}", path)
            for resource, ops in operations.items()
        }

    return Settings(
        docs=_string_list(raw.get("docs"), "docs", path),
        commands=_string_list(raw.get("commands"), "commands", path),
        operations=operations,
        path=path,
    )


def candidate_settings_paths() -> list[Path]:
    return [Path.cwd() / "settings.yaml", Path.home() / ".coda-ai" / "settings.yaml"]


def resolve_settings(path: Path | str | None = None) -> Settings:
    """Load the first settings file found; allow everything when there is none.

    An explicit path, from the caller or CODA_AI_SETTINGS, must exist.
    """
    explicit = path or os.environ.get("CODA_AI_SETTINGS")
    if explicit:
        return load_settings(Path(explicit).expanduser())
    for candidate in candidate_settings_paths():
        if candidate.exists():
            return load_settings(candidate)
    return Settings()
