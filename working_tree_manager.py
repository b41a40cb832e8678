#!/usr/bin/env python3
"""Working tree utilities."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from git_operations import GitOperations


class WorkingTreeManager:
    """Helpers for cleanliness checks and HEAD state."""

    @staticmethod
    def is_clean(repo: Path) -> bool:
        # Untracked files count as changes too.
        out = GitOperations.run_git(["status", "--porcelain", "--untracked-files=all"], cwd=repo)
        return not out.strip()

    @staticmethod
    def current_branch_ref(repo: Path) -> Optional[str]:
        """Return the full ref HEAD points at, or None when HEAD is detached."""
        return GitOperations.git_value(["symbolic-ref", "-q", "HEAD"], cwd=repo) or None

    @staticmethod
    def resolve_commit(repo: Path, rev: str) -> str:
        return GitOperations.run_git(["rev-parse", "--verify", f"{rev}^{{commit}}"], cwd=repo).strip()
