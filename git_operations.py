#!/usr/bin/env python3
"""Git command helpers and the gid error hierarchy."""
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional, Sequence


class GidError(Exception):
    """Raised for recoverable gid errors."""


class GitCommandError(GidError):
    """A git invocation exited with a non-zero status."""


class UserInputError(GidError):
    """Malformed or inconsistent input supplied by the user."""


class ConfigError(GidError):
    """Configuration could not be located, read or parsed."""


class NotARepositoryError(GidError):
    """The operation needs a git repository and none was found."""


class PreconditionError(GidError):
    """A precondition failed; nothing has been modified."""


class DirtyWorkingTreeError(PreconditionError):
    """The working tree has uncommitted changes."""


class UnsupportedTargetError(PreconditionError):
    """The requested commit cannot be rewritten in place."""


class KeyToolError(GidError):
    """An ssh or gpg helper failed."""


def _run(
    args: Sequence[str],
    cwd: Path,
    env: Optional[dict[str, str]] = None,
    input_data: Optional[bytes] = None,
    text: bool = True,
):
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=False,
        text=text,
        capture_output=True,
        env=env,
        input=input_data,
    )


def _checked(args: Sequence[str], cwd: Path, result: subprocess.CompletedProcess):
    if result.returncode != 0:
        stderr, stdout = result.stderr, result.stdout
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
            stdout = stdout.decode("utf-8", errors="replace")
        detail = stderr.strip() or stdout.strip()
        raise GitCommandError(f"git {' '.join(args)} failed in {cwd}: {detail}")
    return result.stdout


class GitOperations:
    """Thin wrappers around git invocations."""

    @staticmethod
    def run_git(args: Sequence[str], *, cwd: Path) -> str:
        """Run a git command and return stdout; raise on failure."""
        return _checked(args, cwd, _run(args, cwd))

    @staticmethod
    def git_ok(args: Sequence[str], *, cwd: Path) -> bool:
        """Return True when git exits with status 0."""
        return _run(args, cwd).returncode == 0

    @staticmethod
    def git_value(args: Sequence[str], *, cwd: Path) -> Optional[str]:
        """Return stripped stdout, or None when git exits non-zero."""
        result = _run(args, cwd)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    @staticmethod
    def run_git_bytes(
        args: Sequence[str],
        *,
        cwd: Path,
        extra_env: Optional[dict[str, str]] = None,
        input_bytes: Optional[bytes] = None,
    ) -> bytes:
        """Run git without decoding; stdin and stdout are passed through as bytes."""
        env = None
        if extra_env:
            env = os.environ.copy()
            env.update(extra_env)
        return _checked(args, cwd, _run(args, cwd, env=env, input_data=input_bytes, text=False))
