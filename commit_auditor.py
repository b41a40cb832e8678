"""Audit commit authorship against the configured identities."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from git_config import CommitInfo, GitConfig
from git_operations import GidError
from identity_resolver import IdentityResolver
from identity_store import Config
from repo_scanner import RepoScanner

log = logging.getLogger("gid.commit_auditor")

MAX_AUDIT_COMMITS = 1000


class IssueKind(str, Enum):
    UNKNOWN_IDENTITY = "Unknown Identity"
    IDENTITY_MISMATCH = "Identity Mismatch"
    MIXED_IDENTITIES = "Mixed Identities"


@dataclass
class AuditIssue:
    kind: IssueKind
    commit_id: str
    message: str
    author_name: str
    author_email: str

    @classmethod
    def for_commit(cls, kind: IssueKind, commit: CommitInfo) -> "AuditIssue":
        return cls(kind, commit.short_id, commit.message, commit.author_name, commit.author_email)


@dataclass
class IdentityUsage:
    name: str
    email: str
    commit_count: int = 0
    is_known: bool = False
    identity_id: Optional[str] = None


@dataclass
class AuditResult:
    repo_path: Path
    total_commits: int
    issues: List[AuditIssue] = field(default_factory=list)
    identities_used: Dict[str, IdentityUsage] = field(default_factory=dict)


def usage_key(name: str, email: str) -> str:
    # Literal pair on purpose: "Bob <b@x.io>" and "bob <b@x.io>" stay apart.
    return f"{name} <{email}>"


class CommitAuditor:
    """Classify the authors of a repository's recent history."""

    def __init__(self, config: Config, home: Optional[Path] = None, max_commits: int = MAX_AUDIT_COMMITS) -> None:
        self.config = config
        self.resolver = IdentityResolver.from_config(config, home=home)
        self.max_commits = max_commits

    def expected_identity(self, repo_path: Path, git: GitConfig) -> Optional[str]:
        return self.resolver.resolve(repo_path, git.get_origin_url())

    def audit_repo(self, path: Path) -> AuditResult:
        """Audit the repository containing ``path``; expectations use its root."""
        git = GitConfig(path)
        root = git.require_repo()
        commits = git.list_commits(self.max_commits)
        expected = self.expected_identity(root, git)
        log.debug("auditing %s: %d commits, expected identity %s", root, len(commits), expected)

        issues: List[AuditIssue] = []
        usage: Dict[str, IdentityUsage] = {}

        for commit in commits:
            key = usage_key(commit.author_name, commit.author_email)
            entry = usage.get(key)
            if entry is None:
                identity, _exact = self.config.match_author(commit.author_name, commit.author_email)
                entry = IdentityUsage(
                    name=commit.author_name,
                    email=commit.author_email,
                    is_known=identity is not None,
                    identity_id=identity.id if identity else None,
                )
                usage[key] = entry
            entry.commit_count += 1

            if not entry.is_known:
                issues.append(AuditIssue.for_commit(IssueKind.UNKNOWN_IDENTITY, commit))
            elif expected is not None and entry.identity_id != expected:
                issues.append(AuditIssue.for_commit(IssueKind.IDENTITY_MISMATCH, commit))

        known = [entry for entry in usage.values() if entry.is_known]
        if len(known) > 1:
            # min() keeps the first entry among equal counts
            least_used = min(known, key=lambda entry: entry.commit_count)
            for commit in commits:
                if commit.author_name == least_used.name and commit.author_email == least_used.email:
                    issues.append(AuditIssue.for_commit(IssueKind.MIXED_IDENTITIES, commit))

        return AuditResult(
            repo_path=root,
            total_commits=len(commits),
            issues=issues,
            identities_used=usage,
        )

    def audit_directory(self, path: Path) -> List[AuditResult]:
        """Audit ``path`` and every repository nested up to three levels below it.

        Directories that cannot be audited are skipped.
        """
        results: List[AuditResult] = []
        try:
            results.append(self.audit_repo(path))
        except GidError as exc:
            log.debug("skipping %s: %s", path, exc)

        for repo in RepoScanner.scan(path):
            try:
                results.append(self.audit_repo(repo))
            except GidError as exc:
                log.debug("skipping %s: %s", repo, exc)
        return results

    def audit_path(self, path: Path) -> List[AuditResult]:
        if (path / ".git").exists():
            return [self.audit_repo(path)]
        return self.audit_directory(path)
