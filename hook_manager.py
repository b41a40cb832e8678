"""Install the gid pre-commit hook locally or through core.hooksPath."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from git_config import GitConfig

log = logging.getLogger("gid.hook_manager")

HOOK_NAME = "pre-commit"
HOOK_MARKER = "# gid pre-commit hook"

PRE_COMMIT_HOOK = f"""#!/bin/sh
{HOOK_MARKER}
# Checks that the committing identity matches the project's rules.

if [ "$GID_SKIP" = "1" ]; then
    exit 0
fi

if ! command -v gid >/dev/null 2>&1; then
    echo "Warning: gid not found, skipping identity check"
    exit 0
fi

output=$(gid doctor 2>&1)
exit_code=$?

if [ $exit_code -ne 0 ]; then
    echo ""
    echo "Git identity check failed"
    echo ""
    echo "$output"
    echo ""
    echo "To fix:  gid doctor --fix"
    echo "To skip: GID_SKIP=1 git commit"
    echo "Or:      git commit --no-verify"
    exit 1
fi

exit 0
"""


def is_gid_hook(path: Path) -> bool:
    try:
        return HOOK_MARKER in path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False


@dataclass
class HookStatus:
    path: Optional[Path]
    installed: bool
    managed: bool
    hooks_path_setting: Optional[str] = None


class HookManager:
    """Write and remove the pre-commit script."""

    def __init__(self, git: GitConfig, global_hooks_dir: Path) -> None:
        self.git = git
        self.global_hooks_dir = global_hooks_dir

    def local_hook_path(self) -> Path:
        return self.git.git_dir() / "hooks" / HOOK_NAME

    def global_hook_path(self) -> Path:
        return self.global_hooks_dir / HOOK_NAME

    @staticmethod
    def write_hook(path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(PRE_COMMIT_HOOK, encoding="utf-8")
        os.chmod(path, 0o755)
        log.debug("wrote hook %s", path)

    def install_local(self) -> Path:
        path = self.local_hook_path()
        self.write_hook(path)
        return path

    def install_global(self) -> Path:
        path = self.global_hook_path()
        self.write_hook(path)
        self.git.set_config("core.hooksPath", str(self.global_hooks_dir), True)
        return path

    def uninstall_local(self) -> bool:
        """Remove the local hook if gid wrote it; return True when removed."""
        path = self.local_hook_path()
        if not path.exists() or not is_gid_hook(path):
            return False
        path.unlink()
        return True

    def uninstall_global(self) -> bool:
        path = self.global_hook_path()
        removed = False
        if path.exists() and is_gid_hook(path):
            path.unlink()
            removed = True
        self.git.unset_config("core.hooksPath", True)
        return removed

    def local_status(self) -> HookStatus:
        if not self.git.is_in_repo():
            return HookStatus(path=None, installed=False, managed=False)
        path = self.local_hook_path()
        return HookStatus(path=path, installed=path.exists(), managed=is_gid_hook(path))

    def global_status(self) -> HookStatus:
        setting = self.git.get_config("core.hooksPath", True)
        if setting is None:
            return HookStatus(path=None, installed=False, managed=False)
        path = Path(setting).expanduser() / HOOK_NAME
        return HookStatus(path=path, installed=path.exists(), managed=is_gid_hook(path), hooks_path_setting=setting)
