"""Identity store: identities, rules and settings persisted as one JSON file."""
from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

from git_operations import ConfigError, UserInputError
from rule_engine import Rule

log = logging.getLogger("gid.identity_store")

CONFIG_FILE_NAME = "config.json"
CONFIG_DIR_ENV = "GID_CONFIG_DIR"


def is_valid_identity_id(value: str) -> bool:
    return bool(value) and all(c.isalnum() or c in "_-" for c in value)


def expand_home(path: str, home: Path) -> Path:
    if path.startswith("~/"):
        return home / path[2:]
    return Path(path)


@dataclass
class Identity:
    id: str
    name: str
    email: str
    description: Optional[str] = None
    ssh_key: Optional[str] = None
    gpg_key: Optional[str] = None
    gpg_sign: bool = False

    @classmethod
    def create(
        cls,
        id: str,
        name: str,
        email: str,
        description: Optional[str] = None,
        ssh_key: Optional[str] = None,
        gpg_key: Optional[str] = None,
    ) -> "Identity":
        """Build a new identity; a GPG key turns commit signing on."""
        return cls(
            id=id,
            name=name,
            email=email,
            description=description or None,
            ssh_key=ssh_key or None,
            gpg_key=gpg_key or None,
            gpg_sign=bool(gpg_key),
        )

    def validate(self, home: Path) -> None:
        if not self.id:
            raise UserInputError("Identity ID cannot be empty")
        if not is_valid_identity_id(self.id):
            raise UserInputError("Identity ID can only contain letters, numbers, underscores, and hyphens")
        if not self.name:
            raise UserInputError("Name cannot be empty")
        if not self.email:
            raise UserInputError("Email cannot be empty")
        if "@" not in self.email or "." not in self.email:
            raise UserInputError(f"Invalid email format: {self.email}")
        if self.ssh_key:
            expanded = expand_home(self.ssh_key, home)
            if not expanded.exists():
                raise UserInputError(f"SSH key file does not exist: {expanded}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Identity":
        if not isinstance(data, Mapping):
            raise ConfigError(f"Identity entry must be an object, got {data!r}")
        try:
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                email=str(data["email"]),
                description=data.get("description"),
                ssh_key=data.get("ssh_key"),
                gpg_key=data.get("gpg_key"),
                gpg_sign=bool(data.get("gpg_sign", False)),
            )
        except KeyError as exc:
            raise ConfigError(f"Identity entry is missing field {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "email": self.email}
        for key in ("description", "ssh_key", "gpg_key"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data["gpg_sign"] = self.gpg_sign
        return data

    def __str__(self) -> str:
        return f"[{self.id}] {self.name} <{self.email}>"


@dataclass
class Settings:
    verbose: bool = True
    strict_mode: bool = False
    search_parent_dirs: bool = False
    editor: Optional[str] = None
    hooks_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        if not isinstance(data, Mapping):
            raise ConfigError("'settings' must be an object")
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class Config:
    """The identity store.

    ``rules`` is kept sorted by priority after every insertion; the sort is
    stable so equal priorities keep their insertion order.
    """

    identities: List[Identity] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)

    def is_empty(self) -> bool:
        return not self.identities and not self.rules

    def find_identity(self, identity_id: str) -> Optional[Identity]:
        return next((i for i in self.identities if i.id == identity_id), None)

    def require_identity(self, identity_id: str) -> Identity:
        identity = self.find_identity(identity_id)
        if identity is None:
            raise UserInputError(f"Identity '{identity_id}' not found")
        return identity

    def match_author(self, name: str, email: str) -> Tuple[Optional[Identity], bool]:
        """Return the identity for an author and whether the match was exact.

        An exact name and email match wins; otherwise the first identity with
        the same email is returned with ``exact`` False.
        """
        for identity in self.identities:
            if identity.name == name and identity.email == email:
                return identity, True
        for identity in self.identities:
            if identity.email == email:
                return identity, False
        return None, False

    def add_identity(self, identity: Identity) -> None:
        if self.find_identity(identity.id) is not None:
            raise UserInputError(f"Identity '{identity.id}' already exists")
        self.identities.append(identity)

    def remove_identity(self, identity_id: str) -> Identity:
        identity = self.require_identity(identity_id)
        self.identities.remove(identity)
        return identity

    def add_rule(self, rule: Rule) -> None:
        self.rules.append(rule)
        self.rules.sort(key=lambda r: r.priority)

    def remove_rule(self, index: int) -> Rule:
        if index < 0 or index >= len(self.rules):
            raise UserInputError(f"Rule index {index} out of range (total {len(self.rules)} rules)")
        return self.rules.pop(index)

    def merge(self, other: "Config") -> Tuple[int, int, int]:
        """Add identities with new ids and all rules of ``other``.

        Returns ``(identities_added, identities_skipped, rules_added)``.
        """
        added = skipped = 0
        for identity in other.identities:
            if self.find_identity(identity.id) is None:
                self.identities.append(identity)
                added += 1
            else:
                skipped += 1
        for rule in other.rules:
            self.add_rule(rule)
        return added, skipped, len(other.rules)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        if not isinstance(data, Mapping):
            raise ConfigError("Configuration root must be an object")
        identities = data.get("identities", [])
        rules = data.get("rules", [])
        for key, value in (("identities", identities), ("rules", rules)):
            if not isinstance(value, list):
                raise ConfigError(f"'{key}' must be a list")
        for item in rules:
            if not isinstance(item, Mapping):
                raise ConfigError(f"Rule entry must be an object, got {item!r}")
        config = cls(
            identities=[Identity.from_dict(item) for item in identities],
            settings=Settings.from_dict(data.get("settings", {})),
        )
        for item in rules:
            config.add_rule(Rule.from_dict(item))
        seen: set[str] = set()
        for identity in config.identities:
            if identity.id in seen:
                raise ConfigError(f"Duplicate identity id '{identity.id}' in configuration")
            seen.add(identity.id)
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "identities": [i.to_dict() for i in self.identities],
            "rules": [r.to_dict() for r in self.rules],
            "settings": self.settings.to_dict(),
        }


@dataclass(frozen=True)
class ConfigContext:
    """Process-level inputs: where the config lives, the home and working directories."""

    config_dir: Path
    home: Path
    cwd: Path
    editor: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "ConfigContext":
        env = os.environ if environ is None else environ
        try:
            home = Path(env["HOME"]) if env.get("HOME") else Path.home()
        except RuntimeError as exc:
            raise ConfigError("Could not determine the user home directory") from exc

        if env.get(CONFIG_DIR_ENV):
            config_dir = Path(env[CONFIG_DIR_ENV])
        elif env.get("XDG_CONFIG_HOME"):
            config_dir = Path(env["XDG_CONFIG_HOME"]) / "gid"
        else:
            config_dir = home / ".config" / "gid"
        editor = env.get("EDITOR") or env.get("VISUAL") or None
        return cls(config_dir=config_dir, home=home, cwd=Path.cwd(), editor=editor)

    @property
    def config_path(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME


def read_config_file(path: Path) -> Config:
    """Parse a configuration document; any problem is a ConfigError."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Could not read configuration file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Configuration file format error in {path}: {exc}") from exc
    return Config.from_dict(data)


def write_config_file(config: Config, path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not write configuration file {path}: {exc}") from exc


class ConfigStore:
    """Load and save the user's configuration file."""

    def __init__(self, context: ConfigContext) -> None:
        self.context = context
        self.path = context.config_path

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Config:
        if not self.path.exists():
            return Config()
        return read_config_file(self.path)

    def save(self, config: Config) -> None:
        log.debug("saving configuration to %s", self.path)
        write_config_file(config, self.path)

    def backup(self) -> Optional[Path]:
        """Copy the current file next to itself; return the backup path."""
        if not self.path.exists():
            return None
        backup_path = self.path.with_name(self.path.name + ".backup")
        shutil.copyfile(self.path, backup_path)
        return backup_path
