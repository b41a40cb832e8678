#!/usr/bin/env python3
"""gid: switch between Git identities by command, rule or .gid file."""
from __future__ import annotations

import argparse
import logging
import shlex
import subprocess
import sys
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from commit_auditor import AuditResult, CommitAuditor, IssueKind
from commit_rewriter import CommitRewriter
from git_config import GitConfig
from git_operations import (
    ConfigError,
    DirtyWorkingTreeError,
    GidError,
    KeyToolError,
    NotARepositoryError,
    UserInputError,
)
from hook_manager import HookManager, HookStatus, is_gid_hook
from identity_resolver import SOURCE_PROJECT, IdentityResolver
from identity_store import (
    Config,
    ConfigContext,
    ConfigStore,
    Identity,
    is_valid_identity_id,
    read_config_file,
    write_config_file,
)
from key_agents import SSH_HOSTS, GpgSigningKeyStore, KeyAgent, SigningKeyStore, SshKeyAgent
from logging_config import setup_logging
from project_config import ProjectConfig, project_lookup
from rule_engine import MatchContext, Rule, RuleEngine, RuleKind
from working_tree_manager import WorkingTreeManager

log = logging.getLogger("gid.cli")

DEFAULT_EXPORT_FILE = "gid-config.json"
AUDIT_SAMPLE_SIZE = 5


@dataclass
class App:
    """Collaborators shared by every command."""

    context: ConfigContext
    key_agent: KeyAgent
    signing_keys: SigningKeyStore
    ask: Callable[[str], str] = input

    @classmethod
    def from_environment(cls) -> "App":
        context = ConfigContext.from_environment()
        return cls(context=context, key_agent=SshKeyAgent(context.home), signing_keys=GpgSigningKeyStore())

    @property
    def store(self) -> ConfigStore:
        return ConfigStore(self.context)

    def load_config(self) -> Config:
        return self.store.load()

    def git(self, path: Optional[Path] = None) -> GitConfig:
        return GitConfig(path or self.context.cwd)

    def prompt(self, text: str, default: Optional[str] = None) -> str:
        suffix = f" [{default}]" if default else ""
        try:
            answer = self.ask(f"{text}{suffix}: ").strip()
        except EOFError:
            answer = ""
        return answer or (default or "")

    def confirm(self, text: str) -> bool:
        return self.prompt(f"{text} (y/N)").lower() in {"y", "yes"}


def warn(message: str) -> None:
    print(f"⚠️  {message}", file=sys.stderr)


# ============================================================================
# IDENTITY COMMANDS
# ============================================================================
def switch_identity(app: App, config: Config, identity_id: str, global_: bool) -> Identity:
    identity = config.require_identity(identity_id)
    git = app.git()
    if not global_ and not git.is_in_repo():
        raise NotARepositoryError("Current directory is not a Git repository. Use --global for global switch")

    git.set_user_name(identity.name, global_)
    git.set_user_email(identity.email, global_)
    if identity.gpg_key:
        git.set_signing_key(identity.gpg_key, global_)
        git.set_gpg_sign(identity.gpg_sign, global_)

    # Git config is already written; key setup below only warns on failure.
    if identity.ssh_key:
        key_path = Path(identity.ssh_key)
        if app.key_agent.key_exists(key_path):
            if app.key_agent.is_running():
                try:
                    app.key_agent.add_key(key_path)
                    print("  🔑 SSH key added to agent")
                except KeyToolError as exc:
                    warn(f"Failed to add key to ssh-agent: {exc}")
            else:
                print("  ssh-agent not running, skipping key addition")
                print(f"    Tip: Run 'ssh-add {identity.ssh_key}' after starting ssh-agent")
            for host in SSH_HOSTS:
                try:
                    app.key_agent.configure_host(identity.id, host, key_path)
                except KeyToolError as exc:
                    warn(f"Failed to configure SSH ({host}): {exc}")
        else:
            warn(f"SSH key file does not exist: {identity.ssh_key}")

    scope = "global" if global_ else "project"
    print(f"✅ Switched to {scope} identity: {identity}")
    if config.settings.verbose:
        if identity.description:
            print(f"  {identity.description}")
        if identity.ssh_key:
            print("  🔑 SSH key configured")
        if identity.gpg_key:
            print("  🔏 GPG signing enabled")
    return identity


def cmd_switch(app: App, args: argparse.Namespace) -> int:
    switch_identity(app, app.load_config(), args.identity, args.global_)
    return 0


def cmd_list(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    if not config.identities:
        print("No identities configured")
        print("Run 'gid add' to add a new identity")
        return 0

    print("📋 Configured identities:")
    for identity in config.identities:
        print(f"  {identity}")
        if identity.description:
            print(f"       {identity.description}")
        extras = [label for label, value in (("SSH", identity.ssh_key), ("GPG", identity.gpg_key)) if value]
        if extras:
            print(f"       [{', '.join(extras)}]")
    print(f"Total {len(config.identities)} identities")
    return 0


def _pair(name: Optional[str], email: Optional[str]) -> str:
    return f"{name or 'Not set'} <{email or 'Not set'}>"


def cmd_current(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    git = app.git()

    print("Current Git identity:")
    local_name, local_email = git.get_user_name(False), git.get_user_email(False)
    global_name, global_email = git.get_user_name(True), git.get_user_email(True)
    print(f"  Project:   {_pair(local_name, local_email) if local_name or local_email else 'Not set'}")
    print(f"  Global:    {_pair(global_name, global_email) if global_name or global_email else 'Not set'}")

    name, email = git.get_effective_user_name(), git.get_effective_user_email()
    if name and email:
        print(f"  Effective: {name} <{email}>")
        identity, exact = config.match_author(name, email)
        if identity is not None and exact:
            print(f"  Identity ID: [{identity.id}]")
            if identity.description:
                print(f"  {identity.description}")
        elif identity is not None:
            print(f"  Possibly: [{identity.id}] (name mismatch)")
        else:
            print("  ⚠️  No configured identity matched")
    else:
        print("⚠️  No valid Git user configuration found")
        print("Run 'gid add' to add an identity, 'gid switch <id>' to switch")

    remote = git.get_origin_url()
    if remote:
        print(f"  Remote: {remote}")
    return 0


def cmd_add(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()

    identity_id = args.id or app.prompt("Identity ID (e.g., work, personal)")
    if not is_valid_identity_id(identity_id):
        raise UserInputError("Identity ID can only contain letters, numbers, underscores, and hyphens")
    if config.find_identity(identity_id) is not None:
        raise UserInputError(f"Identity '{identity_id}' already exists")

    name = args.name or app.prompt("Name")
    email = args.email or app.prompt("Email")

    identity = Identity.create(
        id=identity_id,
        name=name,
        email=email,
        description=args.description,
        ssh_key=args.ssh_key,
        gpg_key=args.gpg_key,
    )
    identity.validate(app.context.home)

    if app.signing_keys.is_available():
        if identity.gpg_key and not app.signing_keys.verify_key(identity.gpg_key):
            warn(f"GPG key '{identity.gpg_key}' was not found in the local keyring")
        elif not identity.gpg_key:
            found = app.signing_keys.find_key_by_email(identity.email)
            if found is not None:
                print(f"  Found GPG key {found.key_id} for {identity.email}; re-add with --gpg-key to sign commits")

    config.add_identity(identity)
    app.store.save(config)

    print(f"✅ Identity added: {identity}")
    if identity.ssh_key:
        print("  🔑 SSH key configured")
    if identity.gpg_key:
        print("  🔏 GPG signing configured")
    print(f"Run 'gid switch {identity.id}' to use it")
    return 0


def cmd_remove(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    identity = config.require_identity(args.identity)

    print(f"About to remove identity: {identity}")
    if not args.yes and not app.confirm("Are you sure you want to remove?"):
        print("Operation cancelled")
        return 0

    config.remove_identity(identity.id)
    app.store.save(config)
    print(f"✅ Identity '{identity.id}' removed")

    dangling = [rule for rule in config.rules if rule.identity == identity.id]
    if dangling:
        warn(f"{len(dangling)} rule(s) still reference '{identity.id}'; see 'gid rule list'")
    return 0


def cmd_edit(app: App, args: argparse.Namespace) -> int:
    store = app.store
    if not store.exists():
        store.save(Config())
        print(f"Configuration file created: {store.path}")

    editor = app.context.editor or store.load().settings.editor or "vi"
    print(f"Editing configuration file using {editor}...")
    print(f"  {store.path}")
    try:
        status = subprocess.run([*shlex.split(editor), str(store.path)], check=False)
    except FileNotFoundError as exc:
        raise ConfigError(f"Failed to start editor: {editor}") from exc
    if status.returncode != 0:
        raise ConfigError("Editor exited abnormally")

    try:
        config = store.load()
    except ConfigError as exc:
        print(f"❌ Configuration format error: {exc}")
        print("Please fix the configuration file and try again")
        return 1
    print(f"✅ Configuration valid, contains {len(config.identities)} identities, {len(config.rules)} rules")
    return 0


def cmd_export(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    if config.is_empty():
        print("No configuration to export")
        return 0
    path = Path(args.file)
    write_config_file(config, path)
    print(f"✅ Configuration exported to: {path}")
    print(f"  {len(config.identities)} identities, {len(config.rules)} rules")
    return 0


def cmd_import(app: App, args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        raise UserInputError(f"File not found: {path}")

    imported = read_config_file(path)
    if imported.is_empty():
        print("No valid configuration found in file")
        return 0
    print(f"Found {len(imported.identities)} identities, {len(imported.rules)} rules")

    store = app.store
    config = store.load()
    if config.is_empty():
        store.save(imported)
        print(f"✅ Configuration imported: {len(imported.identities)} identities, {len(imported.rules)} rules")
        return 0

    mode = args.mode
    if mode is None:
        print("Import options:")
        print("  1. Merge (keep existing, add new)")
        print("  2. Replace (delete existing configuration)")
        print("  3. Cancel")
        mode = {"1": "merge", "2": "replace"}.get(app.prompt("Select [1/2/3]", default="1"))
        if mode is None:
            print("Operation cancelled")
            return 0

    if mode == "merge":
        added, skipped, rules_added = config.merge(imported)
        store.save(config)
        print("✅ Import complete:")
        print(f"  Identities: added {added}, skipped {skipped} (already exist)")
        print(f"  Rules: added {rules_added}")
        return 0

    if not args.yes and not app.confirm(
        "Are you sure you want to replace existing configuration? This cannot be undone"
    ):
        print("Operation cancelled")
        return 0
    backup = store.backup()
    if backup is not None:
        print(f"Backed up to: {backup}")
    store.save(imported)
    print(f"✅ Configuration replaced: {len(imported.identities)} identities, {len(imported.rules)} rules")
    return 0


# ============================================================================
# RULE COMMANDS
# ============================================================================
def cmd_rule_add(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    if config.find_identity(args.identity) is None:
        raise UserInputError(f"Identity '{args.identity}' does not exist")
    if not args.pattern:
        raise UserInputError("Rule pattern cannot be empty")
    if args.priority < 0:
        raise UserInputError("Rule priority must be zero or positive")

    rule = Rule(
        kind=RuleKind(args.type),
        pattern=args.pattern,
        identity=args.identity,
        priority=args.priority,
        description=args.description,
    )
    config.add_rule(rule)
    app.store.save(config)

    label = "Path" if rule.kind is RuleKind.PATH else "Remote URL"
    print(f"✅ Added {label} rule: {rule.pattern} -> [{rule.identity}]")
    return 0


def cmd_rule_list(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    if not config.rules:
        print("No rules configured")
        print("Examples:")
        print("  gid rule add -t path -p '~/work/**' -i work")
        print("  gid rule add -t remote -p 'github.com/company/*' -i work")
        return 0

    print("📋 Configured rules:")
    for index, rule in enumerate(config.rules):
        status = "✓" if rule.enabled else "○"
        print(f"  {index}. {status} {rule}")
        if rule.description:
            print(f"       {rule.description}")
        print(f"       Priority: {rule.priority}")
    print(f"Total {len(config.rules)} rules")
    return 0


def cmd_rule_remove(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    if args.index < 0 or args.index >= len(config.rules):
        raise UserInputError(f"Rule index {args.index} out of range (total {len(config.rules)} rules)")

    rule = config.rules[args.index]
    print(f"About to remove rule: {rule}")
    if not args.yes and not app.confirm("Are you sure you want to remove?"):
        print("Operation cancelled")
        return 0

    config.remove_rule(args.index)
    app.store.save(config)
    print("✅ Rule removed")
    return 0


def cmd_rule_test(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    if not config.rules:
        print("No rules configured")
        return 0

    path = Path(args.path).expanduser().absolute() if args.path else app.context.cwd
    remote = args.remote if args.remote is not None else app.git(path if path.is_dir() else None).get_origin_url()

    print("Test rule matching:")
    print(f"  Path: {path}")
    if remote:
        print(f"  Remote: {remote}")

    matched = RuleEngine(config.rules, home=app.context.home).match_all(MatchContext(path=path, remote_url=remote))
    if not matched:
        print("No matching rules")
        return 0

    print("Matched rules:")
    for position, rule in enumerate(matched):
        marker = "→" if position == 0 else " "
        print(f"  {marker} {rule} (Priority: {rule.priority})")
    identity = config.find_identity(matched[0].identity)
    if identity is not None:
        print(f"✅ Will use identity: {identity}")
    else:
        warn(f"Matched identity '{matched[0].identity}' does not exist")
    return 0


# ============================================================================
# RESOLUTION COMMANDS
# ============================================================================
def cmd_auto(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    git = app.git()
    git.require_repo()

    cwd = app.context.cwd
    resolver = IdentityResolver.from_config(config, home=app.context.home)
    resolution = resolver.explain(cwd, git.get_origin_url())

    if resolution is None:
        if not config.rules:
            print("No rules configured")
            print("Use 'gid rule add' to add rules, or create a .gid file in the project root")
        else:
            print("No matching rules")
        name, email = git.get_effective_user_name(), git.get_effective_user_email()
        if name and email:
            print(f"  Current identity: {name} <{email}>")
        return 0

    if resolution.source == SOURCE_PROJECT:
        print(f"→ Using project config (.gid): [{resolution.identity_id}]")
    else:
        print(f"→ Matched rule: {resolution.rule.pattern} -> [{resolution.identity_id}]")
    switch_identity(app, config, resolution.identity_id, False)
    return 0


def cmd_doctor(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    git = app.git()

    print("Checking Git identity configuration...")
    if not git.is_in_repo():
        print("Current directory is not a Git repository")
        return 0

    cwd = app.context.cwd
    issues: List[str] = []
    suggestions: List[str] = []

    name, email = git.get_effective_user_name(), git.get_effective_user_email()
    print("Current identity:")
    if name and email:
        print(f"  {name} <{email}>")
        identity, exact = config.match_author(name, email)
        if identity is not None and exact:
            print(f"  Identity: [{identity.id}]")
        else:
            issues.append("Current identity is not in the configuration list")
    else:
        issues.append("Git user information not configured")

    def check_expected(identity_id: str, origin: str) -> None:
        expected = config.find_identity(identity_id)
        if expected is None:
            issues.append(f"{origin} identity '{identity_id}' does not exist")
        elif name != expected.name or email != expected.email:
            issues.append(f"Current identity does not match {origin.lower()} (expected: [{identity_id}])")
            suggestions.append(identity_id)
        else:
            print("  ✓ Identity matches")

    lookup = project_lookup(config.settings.search_parent_dirs)
    project: Optional[ProjectConfig] = lookup(cwd)
    if project is not None:
        print("Project config (.gid):")
        print(f"  Expected Identity: [{project.identity}]")
        check_expected(project.identity, "Project config")
        for rule in project.rules:
            if config.find_identity(rule.identity) is None:
                issues.append(f".gid rule {rule} references unknown identity '{rule.identity}'")

    remote = git.get_origin_url()
    if config.rules:
        if remote:
            print("Remote URL:")
            print(f"  {remote}")
        rule = RuleEngine(config.rules, home=app.context.home).match_first(MatchContext(path=cwd, remote_url=remote))
        if rule is not None:
            print("Matched rule:")
            print(f"  {rule.pattern} -> [{rule.identity}]")
            check_expected(rule.identity, "Rule")

    if email:
        identity, _exact = config.match_author(name or "", email)
        if identity is not None and identity.ssh_key and not app.key_agent.key_exists(Path(identity.ssh_key)):
            issues.append(f"SSH key file does not exist: {identity.ssh_key}")

    if not issues:
        print("✅ No issues found")
        return 0

    print(f"⚠️  Found {len(issues)} issues:")
    for issue in issues:
        print(f"  • {issue}")

    if suggestions and args.fix:
        print("Fixing...")
        switch_identity(app, config, suggestions[0], False)
        return 0
    if suggestions:
        print("Suggested actions:")
        for identity_id in suggestions:
            print(f"  → gid switch {identity_id}")
        print("Use 'gid doctor --fix' to fix automatically")
    return 1 if config.settings.strict_mode else 0


# ============================================================================
# HISTORY COMMANDS
# ============================================================================
def print_audit_report(result: AuditResult) -> None:
    print(f"\n📁 {result.repo_path}")
    print(f"   Total Commits: {result.total_commits}")
    print("   Identity Usage Statistics:")
    for usage in result.identities_used.values():
        status = f"[{usage.identity_id}]" if usage.is_known else "[Unknown]"
        print(f"   {status} {usage.name} <{usage.email}> - {usage.commit_count} commits")

    if not result.issues:
        print("   ✓ No issues found")
        return

    print(f"   ⚠️  Found {len(result.issues)} issues:")
    by_kind = defaultdict(list)
    for issue in result.issues:
        by_kind[issue.kind].append(issue)
    for kind in IssueKind:
        issues = by_kind.get(kind)
        if not issues:
            continue
        print(f"   {kind.value} ({len(issues)}):")
        for issue in issues[:AUDIT_SAMPLE_SIZE]:
            print(f"     {issue.commit_id} {issue.message[:40]} - {issue.author_name} <{issue.author_email}>")
        if len(issues) > AUDIT_SAMPLE_SIZE:
            print(f"     ... and {len(issues) - AUDIT_SAMPLE_SIZE} more")


def cmd_audit(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    target = Path(args.path).expanduser().absolute() if args.path else app.context.cwd

    print("Auditing Git commit history...")
    print(f"  Target: {target}")

    results = CommitAuditor(config, home=app.context.home).audit_path(target)
    if not results:
        print("No Git repository found")
        return 0

    total_issues = 0
    for result in results:
        print_audit_report(result)
        total_issues += len(result.issues)

    print()
    print("═" * 50)
    print(f"Audit complete: {len(results)} repositories, {total_issues} issues")

    if total_issues and args.fix:
        print()
        print("Automatic fix does not support commit history modification yet")
        print("  Modifying commit history requires git rebase or git filter-branch")
        print("  Use 'gid fix-commit' for the latest commit, or a tool such as git-filter-repo")
    return 0


def _identity_for_fix(config: Config, git: GitConfig, identity_id: Optional[str]) -> Identity:
    if identity_id:
        return config.require_identity(identity_id)
    email = git.get_effective_user_email()
    if not email:
        raise UserInputError("Could not get current email; pass --identity")
    identity = next((i for i in config.identities if i.email == email), None)
    if identity is None:
        raise UserInputError("Current identity not in configuration list; pass --identity")
    return identity


def cmd_fix_commit(app: App, args: argparse.Namespace) -> int:
    config = app.load_config()
    git = app.git()
    repo = git.require_repo()
    rewriter = CommitRewriter(repo)

    if args.range:
        if not WorkingTreeManager.is_clean(repo):
            raise DirtyWorkingTreeError(
                "Uncommitted changes detected. Please commit or stash changes before fixing history."
            )
        identity = _identity_for_fix(config, git, args.identity)
        return _fix_range(app, rewriter, args.range, identity, args.yes)

    commit = rewriter.prepare(args.commit)
    identity = _identity_for_fix(config, git, args.identity)

    print("Fixing commit identity...")
    print(f"Commit: {commit.short_id}")
    print(f"Message: {commit.subject}")
    print(f"Current Identity: {commit.author.name} <{commit.author.email}>")
    print(f"New Identity:     {identity.name} <{identity.email}>")

    if not args.yes and not app.confirm("Confirm fix?"):
        print("Operation cancelled")
        return 0

    result = rewriter.amend_author(commit, identity)
    print("✅ Commit fixed")
    print(f"  New commit: {result.new_id[:7]}")
    print("⚠️  Commit hash changed, use 'git push --force' if it was already pushed")
    return 0


def _fix_range(app: App, rewriter: CommitRewriter, range_expr: str, identity: Identity, yes: bool) -> int:
    print("Batch fixing commits...")
    print(f"Range: {range_expr}")
    print(f"New Identity: {identity.name} <{identity.email}>")

    plan = rewriter.plan_range(range_expr)
    if plan.commit_count == 0:
        print("No commits in range")
        return 0

    print(f"Will fix {plan.commit_count} commits")
    print("⚠️  WARNING: This will modify commit history, all subsequent commit hashes will change")
    print("  If pushed, you will need to use git push --force")
    print("  Recommend backing up current branch: git branch backup-$(git branch --show-current)")

    if not yes and not app.confirm("Confirm continue?"):
        print("Operation cancelled")
        return 0

    print()
    print("Batch fix not supported yet; no commits were changed")
    print("  Recommend using git rebase or git filter-branch, or a tool such as git-filter-repo")
    print("Example command:")
    print(
        "  git filter-branch --env-filter "
        f"'export GIT_AUTHOR_NAME=\"{identity.name}\" GIT_AUTHOR_EMAIL=\"{identity.email}\"' {range_expr}"
    )
    return 0


# ============================================================================
# HOOKS AND COMPLETIONS
# ============================================================================
def _hook_manager(app: App, config: Config) -> HookManager:
    hooks_dir = config.settings.hooks_path
    global_dir = Path(hooks_dir).expanduser() if hooks_dir else app.context.home / ".config" / "git" / "hooks"
    return HookManager(app.git(), global_dir)


def cmd_hook_install(app: App, args: argparse.Namespace) -> int:
    manager = _hook_manager(app, app.load_config())
    if args.global_:
        path = manager.install_global()
        print(f"✅ Installed global pre-commit hook: {path}")
        print(f"  core.hooksPath = {manager.global_hooks_dir}")
        return 0

    app.git().require_repo()
    path = manager.local_hook_path()
    if path.exists() and not is_gid_hook(path):
        print(f"A pre-commit hook already exists: {path}")
        if not app.confirm("Overwrite?"):
            print("Operation cancelled")
            return 0
    manager.install_local()
    print(f"✅ Installed pre-commit hook: {path}")
    return 0


def cmd_hook_uninstall(app: App, args: argparse.Namespace) -> int:
    manager = _hook_manager(app, app.load_config())
    if args.global_:
        if manager.uninstall_global():
            print("✅ Removed global hook")
        print("✅ Removed core.hooksPath setting")
        return 0

    app.git().require_repo()
    path = manager.local_hook_path()
    if not path.exists():
        print("Hook does not exist")
    elif manager.uninstall_local():
        print("✅ Uninstalled pre-commit hook")
    else:
        print("This is not a gid hook, skipping removal")
    return 0


def _print_hook_status(label: str, status: HookStatus, missing: str) -> None:
    if status.path is None:
        print(f"  ○ {label}: {missing}")
        return
    if not status.installed:
        print(f"  ○ {label}: not installed")
    elif status.managed:
        print(f"  ✓ {label}: installed (gid)")
    else:
        print(f"  ! {label}: present (not gid)")
    print(f"    {status.path}")


def cmd_hook_status(app: App, args: argparse.Namespace) -> int:
    manager = _hook_manager(app, app.load_config())
    print("Git hook status:")
    _print_hook_status("Local hook", manager.local_status(), "not in a Git repository")
    status = manager.global_status()
    _print_hook_status("Global hook", status, "not configured")
    if status.hooks_path_setting:
        print(f"    core.hooksPath = {status.hooks_path_setting}")
    return 0


def completion_script(shell: str, commands: Sequence[str]) -> str:
    words = " ".join(commands)
    if shell == "bash":
        return (
            "_gid_complete() {\n"
            '    if [ "$COMP_CWORD" -eq 1 ]; then\n'
            f'        COMPREPLY=($(compgen -W "{words}" -- "${{COMP_WORDS[1]}}"))\n'
            "    fi\n"
            "}\n"
            "complete -F _gid_complete gid\n"
        )
    if shell == "zsh":
        return f"#compdef gid\n_arguments '1: :({words})' '*::arg:_files'\n"
    if shell == "fish":
        return "".join(
            f"complete -c gid -n '__fish_use_subcommand' -a {command}\n" for command in commands
        )
    return (
        "Register-ArgumentCompleter -Native -CommandName gid -ScriptBlock {\n"
        "    param($wordToComplete)\n"
        f"    '{words}'.Split(' ') | Where-Object {{ $_ -like \"$wordToComplete*\" }}\n"
        "}\n"
    )


def cmd_completions(app: App, args: argparse.Namespace) -> int:
    sys.stdout.write(completion_script(args.shell, COMMAND_NAMES))
    return 0


# ============================================================================
# ARGUMENT PARSING
# ============================================================================
COMMAND_NAMES = (
    "switch", "list", "current", "add", "remove", "edit", "export", "import", "rule",
    "doctor", "auto", "hook", "audit", "fix-commit", "completions",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gid",
        description="Git Identity Manager - manage and switch between multiple Git identities.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("switch", aliases=["sw"], help="Switch to a specified identity")
    p.add_argument("identity", help="Identity ID")
    p.add_argument("-g", "--global", dest="global_", action="store_true", help="Switch globally")
    p.set_defaults(handler=cmd_switch)

    sub.add_parser("list", aliases=["ls"], help="List all identities").set_defaults(handler=cmd_list)
    sub.add_parser("current", aliases=["c"], help="Show current identity").set_defaults(handler=cmd_current)

    p = sub.add_parser("add", help="Add a new identity")
    p.add_argument("-i", "--id", help="Identity ID (e.g., work, personal)")
    p.add_argument("-n", "--name", help="Name")
    p.add_argument("-e", "--email", help="Email")
    p.add_argument("-d", "--description", help="Description")
    p.add_argument("--ssh-key", help="SSH private key path")
    p.add_argument("--gpg-key", help="GPG key ID")
    p.set_defaults(handler=cmd_add)

    p = sub.add_parser("remove", aliases=["rm"], help="Remove an identity")
    p.add_argument("identity", help="Identity ID to remove")
    p.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    p.set_defaults(handler=cmd_remove)

    sub.add_parser("edit", help="Edit configuration file").set_defaults(handler=cmd_edit)

    p = sub.add_parser("export", help="Export configuration")
    p.add_argument("file", nargs="?", default=DEFAULT_EXPORT_FILE, help="Export file path")
    p.set_defaults(handler=cmd_export)

    p = sub.add_parser("import", help="Import configuration")
    p.add_argument("file", help="File path to import")
    p.add_argument("--mode", choices=["merge", "replace"], help="How to combine with existing configuration")
    p.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    p.set_defaults(handler=cmd_import)

    rule = sub.add_parser("rule", help="Manage rules")
    rule_sub = rule.add_subparsers(dest="rule_action", required=True)
    p = rule_sub.add_parser("add", help="Add a rule")
    p.add_argument("-t", "--type", required=True, choices=[k.value for k in RuleKind], help="Rule type")
    p.add_argument("-p", "--pattern", required=True, help="Match pattern")
    p.add_argument("-i", "--identity", required=True, help="Identity to use when matched")
    p.add_argument("--priority", type=int, default=100, help="Lower number = higher priority")
    p.add_argument("-d", "--description", help="Rule description")
    p.set_defaults(handler=cmd_rule_add)
    rule_sub.add_parser("list", help="List all rules").set_defaults(handler=cmd_rule_list)
    p = rule_sub.add_parser("remove", help="Remove a rule")
    p.add_argument("index", type=int, help="Rule index (see 'gid rule list')")
    p.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    p.set_defaults(handler=cmd_rule_remove)
    p = rule_sub.add_parser("test", help="Test rule matching")
    p.add_argument("-p", "--path", help="Test path")
    p.add_argument("-r", "--remote", help="Test remote URL")
    p.set_defaults(handler=cmd_rule_test)

    p = sub.add_parser("doctor", help="Check identity configuration in current directory")
    p.add_argument("-f", "--fix", action="store_true", help="Automatically fix issues")
    p.set_defaults(handler=cmd_doctor)

    sub.add_parser("auto", help="Switch identity based on .gid and rules").set_defaults(handler=cmd_auto)

    hook = sub.add_parser("hook", help="Manage Git hooks")
    hook_sub = hook.add_subparsers(dest="hook_action", required=True)
    for action, handler, text in (
        ("install", cmd_hook_install, "Install Git hook"),
        ("uninstall", cmd_hook_uninstall, "Uninstall Git hook"),
    ):
        p = hook_sub.add_parser(action, help=text)
        p.add_argument("-g", "--global", dest="global_", action="store_true", help="Use core.hooksPath")
        p.set_defaults(handler=handler)
    hook_sub.add_parser("status", help="Show hook status").set_defaults(handler=cmd_hook_status)

    p = sub.add_parser("audit", help="Audit identity information in commit history")
    p.add_argument("-p", "--path", help="Path to audit (defaults to current directory)")
    p.add_argument("-f", "--fix", action="store_true", help="Attempt to fix issues")
    p.set_defaults(handler=cmd_audit)

    p = sub.add_parser("fix-commit", help="Fix identity information in commits")
    p.add_argument("commit", nargs="?", default="HEAD", help="Commit to fix (defaults to HEAD)")
    p.add_argument("-i", "--identity", help="Identity to use (defaults to current identity)")
    p.add_argument("-r", "--range", help="Commit range, e.g. HEAD~3..HEAD")
    p.add_argument("-y", "--yes", action="store_true", help="Skip confirmation prompts")
    p.set_defaults(handler=cmd_fix_commit)

    p = sub.add_parser("completions", help="Generate shell completion scripts")
    p.add_argument("shell", choices=["bash", "zsh", "fish", "powershell"])
    p.set_defaults(handler=cmd_completions)

    return parser


def main(argv: Optional[Iterable[str]] = None, app: Optional[App] = None) -> int:
    args = build_parser().parse_args(None if argv is None else list(argv))
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        app = app or App.from_environment()
        return args.handler(app, args)
    except GidError as exc:
        log.debug("command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n👋 Bye")
        return 130


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
