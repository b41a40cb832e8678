"""Git configuration management."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from git_operations import GitOperations, NotARepositoryError

log = logging.getLogger("gid.git_config")

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


@dataclass
class CommitInfo:
    short_id: str
    message: str
    author_name: str
    author_email: str


def discover_repository(path: Path) -> Optional[Path]:
    """Return the work tree root of the repository containing ``path``."""
    if not path.is_dir():
        return None
    top = GitOperations.git_value(["rev-parse", "--show-toplevel"], cwd=path)
    return Path(top) if top else None


class GitConfig:
    """Reads and writes identity settings of a repository and of the user.

    Local values come from the repository's own config file only; global
    values from the user's global config. The effective value of a field is
    the local one when present, else the global one, decided per field.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.repo_root = discover_repository(path)

    def is_in_repo(self) -> bool:
        return self.repo_root is not None

    def require_repo(self) -> Path:
        if self.repo_root is None:
            raise NotARepositoryError(f"{self.path} is not inside a Git repository")
        return self.repo_root

    @property
    def _cwd(self) -> Path:
        if self.repo_root is not None:
            return self.repo_root
        return self.path if self.path.is_dir() else Path.home()

    def git_dir(self) -> Path:
        """Return the absolute .git directory of the repository."""
        root = self.require_repo()
        return Path(GitOperations.run_git(["rev-parse", "--absolute-git-dir"], cwd=root).strip())

    # ------------------------------------------------------------------
    # Generic key access
    def _scope(self, global_: bool) -> str:
        if global_:
            return "--global"
        self.require_repo()
        return "--local"

    def get_config(self, key: str, global_: bool) -> Optional[str]:
        if not global_ and self.repo_root is None:
            return None
        value = GitOperations.git_value(["config", self._scope(global_), "--get", key], cwd=self._cwd)
        return value if value else None

    def set_config(self, key: str, value: str, global_: bool) -> None:
        scope = self._scope(global_)
        log.debug("git config %s %s=%s", scope, key, value)
        GitOperations.run_git(["config", scope, key, value], cwd=self._cwd)

    def unset_config(self, key: str, global_: bool) -> bool:
        """Remove ``key``; return False when it was not set."""
        return GitOperations.git_ok(["config", self._scope(global_), "--unset", key], cwd=self._cwd)

    # ------------------------------------------------------------------
    # Identity fields
    def get_user_name(self, global_: bool) -> Optional[str]:
        return self.get_config("user.name", global_)

    def get_user_email(self, global_: bool) -> Optional[str]:
        return self.get_config("user.email", global_)

    def get_signing_key(self, global_: bool) -> Optional[str]:
        return self.get_config("user.signingkey", global_)

    def get_gpg_sign(self, global_: bool) -> bool:
        return (self.get_config("commit.gpgsign", global_) or "").lower() == "true"

    def set_user_name(self, name: str, global_: bool) -> None:
        self.set_config("user.name", name, global_)

    def set_user_email(self, email: str, global_: bool) -> None:
        self.set_config("user.email", email, global_)

    def set_signing_key(self, key: str, global_: bool) -> None:
        self.set_config("user.signingkey", key, global_)

    def set_gpg_sign(self, enabled: bool, global_: bool) -> None:
        self.set_config("commit.gpgsign", "true" if enabled else "false", global_)

    def get_effective_user_name(self) -> Optional[str]:
        return self.get_user_name(False) or self.get_user_name(True)

    def get_effective_user_email(self) -> Optional[str]:
        return self.get_user_email(False) or self.get_user_email(True)

    # ------------------------------------------------------------------
    # Repository data
    def get_origin_url(self) -> Optional[str]:
        if self.repo_root is None:
            return None
        return GitOperations.git_value(["remote", "get-url", "origin"], cwd=self.repo_root) or None

    def list_commits(self, max_count: int) -> List[CommitInfo]:
        """Return up to ``max_count`` commits reachable from HEAD, newest first."""
        root = self.require_repo()
        if not GitOperations.git_ok(["rev-parse", "--verify", "--quiet", "HEAD"], cwd=root):
            return []

        out = GitOperations.run_git(
            [
                "log",
                f"--max-count={max_count}",
                f"--format=%H{_FIELD_SEP}%an{_FIELD_SEP}%ae{_FIELD_SEP}%B{_RECORD_SEP}",
                "HEAD",
            ],
            cwd=root,
        )
        commits: List[CommitInfo] = []
        for record in out.split(_RECORD_SEP):
            record = record.lstrip("\n")
            if not record:
                continue
            commit_id, name, email, body = record.split(_FIELD_SEP, 3)
            lines = body.splitlines()
            commits.append(
                CommitInfo(
                    short_id=commit_id[:7],
                    message=lines[0] if lines else "",
                    author_name=name,
                    author_email=email,
                )
            )
        return commits
