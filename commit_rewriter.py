"""Rewrite the author of the HEAD commit."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from git_operations import (
    DirtyWorkingTreeError,
    GitCommandError,
    GitOperations,
    UnsupportedTargetError,
    UserInputError,
)
from identity_store import Identity
from working_tree_manager import WorkingTreeManager

log = logging.getLogger("gid.commit_rewriter")

REFLOG_MESSAGE = "gid fix-commit"

_SIGNATURE_RE = re.compile(r"^(?P<name>.*) <(?P<email>.*)> (?P<time>\d+) (?P<tz>[+-]\d{4})$")


@dataclass
class Signature:
    name: str
    email: str
    timestamp: str
    tz: str

    @classmethod
    def parse(cls, raw: str) -> "Signature":
        match = _SIGNATURE_RE.match(raw)
        if match is None:
            raise GitCommandError(f"Unrecognised signature line: {raw!r}")
        return cls(match["name"], match["email"], match["time"], match["tz"])

    @property
    def git_date(self) -> str:
        return f"@{self.timestamp} {self.tz}"


@dataclass
class CommitObject:
    """A commit as stored in the object database.

    ``raw_message`` holds the message bytes exactly as stored so a rewrite
    keeps line endings and non-UTF-8 content; ``message`` is a decoded copy
    for display.
    """

    commit_id: str
    tree: str
    parents: List[str]
    author: Signature
    committer: Signature
    raw_message: bytes
    encoding: Optional[str] = None

    @property
    def message(self) -> str:
        return self.raw_message.decode(self.encoding or "utf-8", errors="replace")

    @property
    def short_id(self) -> str:
        return self.commit_id[:7]

    @property
    def subject(self) -> str:
        lines = self.message.splitlines()
        return lines[0] if lines else ""

    @classmethod
    def parse(cls, commit_id: str, raw: bytes) -> "CommitObject":
        header_bytes, _sep, message = raw.partition(b"\n\n")
        header = header_bytes.decode("utf-8", errors="surrogateescape")
        tree = ""
        parents: List[str] = []
        author = committer = None
        encoding = None
        for line in header.split("\n"):
            if line.startswith(" "):
                # continuation of a multi-line header such as gpgsig
                continue
            key, _space, value = line.partition(" ")
            if key == "tree":
                tree = value
            elif key == "parent":
                parents.append(value)
            elif key == "author":
                author = Signature.parse(value)
            elif key == "committer":
                committer = Signature.parse(value)
            elif key == "encoding":
                encoding = value
        if not tree or author is None or committer is None:
            raise GitCommandError(f"Could not parse commit {commit_id}")
        return cls(commit_id, tree, parents, author, committer, message, encoding)


@dataclass
class FixResult:
    old_id: str
    new_id: str
    old_author: Signature
    new_author_name: str
    new_author_email: str
    branch_ref: Optional[str] = None


@dataclass
class RangePlan:
    range_expr: str
    commit_count: int
    commits: List[str] = field(default_factory=list)


class CommitRewriter:
    """Amend authorship of the HEAD commit of one repository."""

    def __init__(self, repo: Path) -> None:
        self.repo = repo

    def read_commit(self, rev: str) -> CommitObject:
        commit_id = WorkingTreeManager.resolve_commit(self.repo, rev)
        raw = GitOperations.run_git_bytes(["cat-file", "commit", commit_id], cwd=self.repo)
        return CommitObject.parse(commit_id, raw)

    def prepare(self, commit_ref: str) -> CommitObject:
        """Check the preconditions of a single-commit fix and load the commit.

        Raises before anything is written when the working tree has any
        change or when ``commit_ref`` is not literally ``HEAD``.
        """
        if not WorkingTreeManager.is_clean(self.repo):
            raise DirtyWorkingTreeError(
                "Uncommitted changes detected. Please commit or stash changes before fixing history."
            )
        if commit_ref != "HEAD":
            raise UnsupportedTargetError(
                "Fixing non-HEAD commits is not supported; use --range, e.g. gid fix-commit --range HEAD~3..HEAD"
            )
        return self.read_commit("HEAD")

    def amend_author(self, commit: CommitObject, identity: Identity) -> FixResult:
        """Write a copy of ``commit`` authored by ``identity`` and move HEAD to it.

        Tree, parents, message and committer are carried over unchanged; the
        author date is the current time. The original commit stays in the
        object store.
        """
        if not WorkingTreeManager.is_clean(self.repo):
            raise DirtyWorkingTreeError("Working tree changed; aborting before rewriting HEAD")

        args: List[str] = []
        if commit.encoding:
            args += ["-c", f"i18n.commitEncoding={commit.encoding}"]
        args += ["commit-tree", commit.tree]
        for parent in commit.parents:
            args += ["-p", parent]
        args += ["-F", "-"]
        new_id = GitOperations.run_git_bytes(
            args,
            cwd=self.repo,
            extra_env={
                "GIT_AUTHOR_NAME": identity.name,
                "GIT_AUTHOR_EMAIL": identity.email,
                "GIT_COMMITTER_NAME": commit.committer.name,
                "GIT_COMMITTER_EMAIL": commit.committer.email,
                "GIT_COMMITTER_DATE": commit.committer.git_date,
            },
            input_bytes=commit.raw_message,
        ).decode("ascii").strip()
        log.debug("wrote %s as replacement for %s", new_id, commit.commit_id)

        branch_ref = WorkingTreeManager.current_branch_ref(self.repo)
        if branch_ref is not None:
            GitOperations.run_git(
                ["update-ref", "-m", REFLOG_MESSAGE, branch_ref, new_id, commit.commit_id],
                cwd=self.repo,
            )
        else:
            GitOperations.run_git(
                ["update-ref", "--no-deref", "-m", REFLOG_MESSAGE, "HEAD", new_id, commit.commit_id],
                cwd=self.repo,
            )

        return FixResult(
            old_id=commit.commit_id,
            new_id=new_id,
            old_author=commit.author,
            new_author_name=identity.name,
            new_author_email=identity.email,
            branch_ref=branch_ref,
        )

    def fix_head(self, commit_ref: str, identity: Identity) -> FixResult:
        return self.amend_author(self.prepare(commit_ref), identity)

    def plan_range(self, range_expr: str) -> RangePlan:
        """Count the commits a range rewrite would touch; nothing is rewritten."""
        if ".." not in range_expr:
            raise UserInputError("Please use range format, e.g., HEAD~3..HEAD")

        separator = "..." if "..." in range_expr else ".."
        start, _sep, end = range_expr.partition(separator)
        if not start.strip() or not end.strip():
            raise UserInputError(f"Invalid range '{range_expr}': both endpoints are required, e.g. HEAD~3..HEAD")
        for endpoint in (start, end):
            if not GitOperations.git_ok(
                ["rev-parse", "--verify", "--quiet", f"{endpoint}^{{commit}}"], cwd=self.repo
            ):
                raise UserInputError(f"Invalid range '{range_expr}': unknown revision '{endpoint}'")

        out = GitOperations.run_git(["rev-list", range_expr], cwd=self.repo)
        commits = [line for line in out.splitlines() if line]
        return RangePlan(range_expr=range_expr, commit_count=len(commits), commits=commits)
