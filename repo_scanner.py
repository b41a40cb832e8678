#!/usr/bin/env python3
"""Repository discovery beneath a base directory."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List

from git_operations import NotARepositoryError

MAX_SCAN_DEPTH = 3


class RepoScanner:
    """Find nested git repositories by their ``.git`` directories."""

    @staticmethod
    def scan(base_dir: Path, max_depth: int = MAX_SCAN_DEPTH) -> List[Path]:
        """Return repository roots below ``base_dir``.

        A ``.git`` directory counts as found when it sits at most
        ``max_depth`` levels below ``base_dir``: with the default depth
        ``base/a/b/.git`` is found, ``base/a/b/c/.git`` is not. ``base_dir``
        itself is never reported.
        """
        base_dir = base_dir.expanduser()
        if not base_dir.is_dir():
            raise NotARepositoryError(f"Directory '{base_dir}' not found")

        repos: List[Path] = []
        base_depth = len(base_dir.parts)
        for root, dirs, _files in os.walk(base_dir):
            current = Path(root)
            depth = len(current.parts) - base_depth
            if ".git" in dirs:
                dirs.remove(".git")
                if depth >= 1 and depth + 1 <= max_depth:
                    repos.append(current)
            if depth + 1 >= max_depth:
                dirs[:] = []
            dirs.sort()
        return repos
