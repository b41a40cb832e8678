"""Per-project ``.gid`` marker files."""
from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from git_operations import ConfigError
from identity_store import is_valid_identity_id
from rule_engine import Rule

PROJECT_FILE_NAME = ".gid"


@dataclass
class ProjectConfig:
    """Identity pinned by a ``.gid`` file.

    The file is either a bare identity id on its first non-empty line, or a
    TOML document with an ``identity`` key and optional ``[[rules]]``.
    """

    identity: str
    rules: List[Rule] = field(default_factory=list)

    @classmethod
    def parse(cls, content: str) -> Optional["ProjectConfig"]:
        trimmed = content.strip()
        if not trimmed:
            return None

        if "=" in trimmed or "[" in trimmed:
            try:
                data = tomllib.loads(trimmed)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f".gid file format error: {exc}") from exc
            identity = data.get("identity")
            if not isinstance(identity, str) or not identity:
                raise ConfigError(".gid file format error: missing 'identity'")
            rules = data.get("rules", [])
            if not isinstance(rules, list):
                raise ConfigError(".gid file format error: 'rules' must be an array of tables")
            return cls(identity=identity, rules=[Rule.from_dict(r) for r in rules])

        identity = trimmed.splitlines()[0].strip()
        if not is_valid_identity_id(identity):
            raise ConfigError(f"Invalid identity ID format in .gid file: {identity}")
        return cls(identity=identity)

    @classmethod
    def load_from_dir(cls, directory: Path) -> Optional["ProjectConfig"]:
        path = directory / PROJECT_FILE_NAME
        if not path.is_file():
            return None
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Could not read .gid file: {path}: {exc}") from exc
        return cls.parse(content)

    @classmethod
    def find_in_parents(cls, start: Path) -> Optional[Tuple["ProjectConfig", Path]]:
        """Walk from ``start`` up to the filesystem root; first ``.gid`` wins."""
        for directory in (start, *start.parents):
            config = cls.load_from_dir(directory)
            if config is not None:
                return config, directory / PROJECT_FILE_NAME
        return None


def project_lookup(search_parents: bool):
    """Return a ``cwd -> ProjectConfig | None`` lookup.

    Only ``cwd`` itself is consulted unless ``search_parents`` is set.
    """

    def lookup(cwd: Path) -> Optional[ProjectConfig]:
        if search_parents:
            found = ProjectConfig.find_in_parents(cwd)
            return found[0] if found else None
        return ProjectConfig.load_from_dir(cwd)

    return lookup
