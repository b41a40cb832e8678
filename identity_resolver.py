"""Decide which identity applies to a directory."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from identity_store import Config
from project_config import ProjectConfig, project_lookup
from rule_engine import MatchContext, Rule, RuleEngine

log = logging.getLogger("gid.identity_resolver")

ProjectLookup = Callable[[Path], Optional[ProjectConfig]]

SOURCE_PROJECT = "project"
SOURCE_RULE = "rule"


@dataclass
class Resolution:
    identity_id: str
    source: str
    rule: Optional[Rule] = None


class IdentityResolver:
    """Project config first, then rules, then no opinion.

    A ``.gid`` project config always wins; rules are not evaluated at all
    when one is present.
    """

    def __init__(self, rules: Iterable[Rule], project_lookup: ProjectLookup, home: Optional[Path] = None) -> None:
        self.engine = RuleEngine(rules, home=home)
        self.project_lookup = project_lookup

    @classmethod
    def from_config(cls, config: Config, home: Optional[Path] = None) -> "IdentityResolver":
        return cls(config.rules, project_lookup(config.settings.search_parent_dirs), home=home)

    def explain(self, cwd: Path, remote_url: Optional[str] = None) -> Optional[Resolution]:
        project = self.project_lookup(cwd)
        if project is not None:
            log.debug("%s pinned to %s by .gid", cwd, project.identity)
            return Resolution(project.identity, SOURCE_PROJECT)

        rule = self.engine.match_first(MatchContext(path=cwd, remote_url=remote_url))
        if rule is not None:
            return Resolution(rule.identity, SOURCE_RULE, rule)
        return None

    def resolve(self, cwd: Path, remote_url: Optional[str] = None) -> Optional[str]:
        resolution = self.explain(cwd, remote_url)
        return resolution.identity_id if resolution else None
