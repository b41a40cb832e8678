"""SSH agent and GPG keyring access behind small interfaces."""
from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from git_operations import KeyToolError

log = logging.getLogger("gid.key_agents")

SSH_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")
MANAGED_MARKER = "# gid managed"


def _run_tool(args: Sequence[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(list(args), check=False, text=True, capture_output=True)
    except FileNotFoundError as exc:
        raise KeyToolError(f"{args[0]} not found") from exc


class KeyAgent(ABC):
    """Where SSH private keys get registered and host aliases configured."""

    @abstractmethod
    def key_exists(self, key_path: Path) -> bool:
        """Return True when the private key file exists."""

    @abstractmethod
    def is_running(self) -> bool:
        """Return True when an agent is reachable."""

    @abstractmethod
    def add_key(self, key_path: Path) -> None:
        """Register ``key_path`` with the agent."""

    @abstractmethod
    def configure_host(self, identity_id: str, hostname: str, key_path: Path) -> str:
        """Point a ``<host>-<identity>`` alias at ``key_path``; return the alias."""


@dataclass
class GpgKey:
    key_id: str
    uid: str
    email: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.key_id} - {self.uid}"


class SigningKeyStore(ABC):
    """Read-only view of the user's signing keys."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True when the signing tool can be run."""

    @abstractmethod
    def list_keys(self) -> List[GpgKey]:
        """Return the secret keys available for signing."""

    @abstractmethod
    def verify_key(self, key_id: str) -> bool:
        """Return True when ``key_id`` names an existing secret key."""

    def find_key_by_email(self, email: str) -> Optional[GpgKey]:
        return next((k for k in self.list_keys() if k.email == email), None)


class SshKeyAgent(KeyAgent):
    """``ssh-add`` and ``~/.ssh/config`` on the host."""

    def __init__(self, home: Path) -> None:
        self.home = home
        self.ssh_dir = home / ".ssh"
        self.config_path = self.ssh_dir / "config"

    def expand(self, key_path: Path) -> Path:
        text = str(key_path)
        if text.startswith("~/"):
            return self.home / text[2:]
        return key_path

    def key_exists(self, key_path: Path) -> bool:
        return self.expand(key_path).exists()

    def is_running(self) -> bool:
        try:
            return _run_tool(["ssh-add", "-l"]).returncode == 0
        except KeyToolError:
            return False

    def add_key(self, key_path: Path) -> None:
        expanded = self.expand(key_path)
        if not expanded.exists():
            raise KeyToolError(f"SSH key file does not exist: {expanded}")
        result = _run_tool(["ssh-add", str(expanded)])
        if result.returncode != 0:
            raise KeyToolError(f"Failed to add key to ssh-agent: {result.stderr.strip()}")

    def configure_host(self, identity_id: str, hostname: str, key_path: Path) -> str:
        alias = f"{hostname.replace('.', '-')}-{identity_id}"
        entry = (
            f"\n{MANAGED_MARKER} - {alias}\n"
            f"Host {alias}\n"
            f"    HostName {hostname}\n"
            f"    User git\n"
            f"    IdentityFile {key_path}\n"
            f"    IdentitiesOnly yes\n"
        )
        try:
            if not self.ssh_dir.exists():
                self.ssh_dir.mkdir(parents=True)
                os.chmod(self.ssh_dir, 0o700)
            existing = self.config_path.read_text(encoding="utf-8") if self.config_path.exists() else ""
            existing = remove_host_block(existing, alias)
            self.config_path.write_text(existing + entry, encoding="utf-8")
            os.chmod(self.config_path, 0o600)
        except OSError as exc:
            raise KeyToolError(f"Could not write SSH config {self.config_path}: {exc}") from exc
        return alias


def remove_host_block(config: str, alias: str) -> str:
    """Drop the gid-managed ``Host <alias>`` block (marker line included)."""
    result: List[str] = []
    skipping = False
    for line in config.splitlines(keepends=True):
        stripped = line.strip()
        if stripped == f"{MANAGED_MARKER} - {alias}":
            skipping = True
            continue
        if skipping:
            if stripped.startswith("Host ") and stripped != f"Host {alias}":
                skipping = False
            elif stripped.startswith(MANAGED_MARKER):
                skipping = False
            else:
                continue
        result.append(line)
    text = "".join(result)
    return text.rstrip("\n") + "\n" if text.strip() else ""


class GpgSigningKeyStore(SigningKeyStore):
    """``gpg --list-secret-keys`` on the host."""

    def is_available(self) -> bool:
        try:
            return _run_tool(["gpg", "--version"]).returncode == 0
        except KeyToolError:
            return False

    def list_keys(self) -> List[GpgKey]:
        result = _run_tool(["gpg", "--list-secret-keys", "--keyid-format", "long"])
        if result.returncode != 0:
            return []
        return parse_gpg_listing(result.stdout)

    def verify_key(self, key_id: str) -> bool:
        return _run_tool(["gpg", "--list-secret-keys", key_id]).returncode == 0


def parse_gpg_listing(output: str) -> List[GpgKey]:
    """Parse ``gpg --list-secret-keys --keyid-format long`` output.

    ``sec   rsa4096/ABCD1234EF567890 2023-01-01 [SC]`` starts a key and the
    first ``uid`` line after it names the owner.
    """
    keys: List[GpgKey] = []
    current: Optional[GpgKey] = None
    for line in output.splitlines():
        if line.startswith("sec"):
            if current is not None:
                keys.append(current)
            current = None
            parts = line.split()
            if len(parts) >= 2 and "/" in parts[1]:
                current = GpgKey(key_id=parts[1].split("/", 1)[1], uid="")
        elif line.startswith("uid") and current is not None and not current.uid:
            uid = line[3:].strip()
            if uid.startswith("["):
                uid = uid.split("]", 1)[-1].strip()
            current.uid = uid
            if "<" in uid and ">" in uid:
                current.email = uid[uid.index("<") + 1 : uid.index(">")]
        elif not line.strip() and current is not None:
            keys.append(current)
            current = None
    if current is not None:
        keys.append(current)
    return keys
