"""Path and remote URL rules that pick an identity automatically."""
from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Iterable, List, Optional

from git_operations import ConfigError

log = logging.getLogger("gid.rule_engine")

DEFAULT_PRIORITY = 100


class RuleKind(str, Enum):
    PATH = "path"
    REMOTE = "remote"


@dataclass
class Rule:
    """A pattern that selects ``identity`` when it matches.

    Lower ``priority`` numbers take precedence.
    """

    kind: RuleKind
    pattern: str
    identity: str
    priority: int = DEFAULT_PRIORITY
    description: Optional[str] = None
    enabled: bool = True

    @classmethod
    def path(cls, pattern: str, identity: str, priority: int = DEFAULT_PRIORITY) -> "Rule":
        return cls(RuleKind.PATH, pattern, identity, priority)

    @classmethod
    def remote(cls, pattern: str, identity: str, priority: int = DEFAULT_PRIORITY) -> "Rule":
        return cls(RuleKind.REMOTE, pattern, identity, priority)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Rule":
        try:
            kind = RuleKind(data["type"])
            pattern = str(data["pattern"])
            identity = str(data["identity"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid rule entry {data!r}: {exc}") from exc
        priority = data.get("priority", DEFAULT_PRIORITY)
        if not isinstance(priority, int) or isinstance(priority, bool) or priority < 0:
            raise ConfigError(f"Invalid rule priority {priority!r} for pattern '{pattern}'")
        description = data.get("description")
        return cls(
            kind=kind,
            pattern=pattern,
            identity=identity,
            priority=priority,
            description=str(description) if description is not None else None,
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind.value,
            "pattern": self.pattern,
            "identity": self.identity,
            "priority": self.priority,
        }
        if self.description is not None:
            data["description"] = self.description
        data["enabled"] = self.enabled
        return data

    def matches_path(self, path: Path, home: Optional[Path] = None) -> bool:
        if not self.enabled or self.kind is not RuleKind.PATH:
            return False

        pattern = self.pattern
        if pattern.startswith("~/") and home is not None:
            pattern = f"{home}/{pattern[2:]}"

        if fnmatch.fnmatchcase(str(path), pattern):
            return True

        # "~/work/**" should also cover "~/work" and anything beneath it.
        prefix = pattern
        while prefix.endswith("**"):
            prefix = prefix[:-2]
        prefix = prefix.rstrip("/")
        if not prefix:
            return False
        return PurePath(path).is_relative_to(PurePath(prefix))

    def matches_remote(self, remote_url: str) -> bool:
        if not self.enabled or self.kind is not RuleKind.REMOTE:
            return False

        if self.pattern in remote_url:
            return True

        try:
            if re.search(self.pattern, remote_url):
                return True
        except re.error:
            log.debug("remote pattern %r is not a valid regex", self.pattern)

        return fnmatch.fnmatchcase(normalize_git_url(remote_url), self.pattern)

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.pattern} -> {self.identity}"


@dataclass
class MatchContext:
    path: Optional[Path] = None
    remote_url: Optional[str] = None


class RuleEngine:
    """Evaluate rules in their stored (priority-sorted) order."""

    def __init__(self, rules: Iterable[Rule], home: Optional[Path] = None) -> None:
        self.rules = list(rules)
        self.home = home

    def _matches(self, rule: Rule, context: MatchContext) -> bool:
        if context.remote_url is not None and rule.matches_remote(context.remote_url):
            return True
        if context.path is not None and rule.matches_path(context.path, self.home):
            return True
        return False

    def match_first(self, context: MatchContext) -> Optional[Rule]:
        for rule in self.rules:
            if rule.enabled and self._matches(rule, context):
                log.debug("rule matched: %s", rule)
                return rule
        return None

    def match_all(self, context: MatchContext) -> List[Rule]:
        return [rule for rule in self.rules if rule.enabled and self._matches(rule, context)]


def normalize_git_url(url: str) -> str:
    """Reduce a remote URL to ``host/owner/repo`` form.

    ``git@github.com:user/repo.git`` and ``https://github.com/user/repo.git``
    both become ``github.com/user/repo``.
    """
    url = url.strip()
    if url.startswith("git@"):
        return url.removeprefix("git@").replace(":", "/").removesuffix(".git")
    if url.startswith(("https://", "http://")):
        return url.removeprefix("https://").removeprefix("http://").removesuffix(".git")
    return url
