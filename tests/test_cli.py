import json
from pathlib import Path
from typing import List, Optional

import pytest

from conftest import commit, git, make_repo
from gid import App, COMMAND_NAMES, build_parser, completion_script, main
from identity_store import ConfigContext, ConfigStore
from key_agents import GpgKey, KeyAgent, SigningKeyStore


class FakeKeyAgent(KeyAgent):
    def __init__(self, existing=(), running=True):
        self.existing = {str(p) for p in existing}
        self.running = running
        self.added: List[Path] = []
        self.hosts: List[str] = []

    def key_exists(self, key_path):
        return str(key_path) in self.existing

    def is_running(self):
        return self.running

    def add_key(self, key_path):
        self.added.append(key_path)

    def configure_host(self, identity_id, hostname, key_path):
        alias = f"{hostname.replace('.', '-')}-{identity_id}"
        self.hosts.append(alias)
        return alias


class FakeSigningKeys(SigningKeyStore):
    def __init__(self, keys: Optional[List[GpgKey]] = None, available=True):
        self.keys = keys or []
        self.available = available

    def is_available(self):
        return self.available

    def list_keys(self):
        return self.keys

    def verify_key(self, key_id):
        return any(k.key_id == key_id for k in self.keys)


def make_app(cwd: Path, home: Path, answers=(), key_agent=None, editor=None) -> App:
    replies = iter(answers)
    context = ConfigContext(config_dir=home / ".config" / "gid", home=home, cwd=cwd, editor=editor)
    return App(
        context=context,
        key_agent=key_agent or FakeKeyAgent(),
        signing_keys=FakeSigningKeys(),
        ask=lambda _prompt: next(replies),
    )


@pytest.fixture
def home(isolated_env):
    return isolated_env


@pytest.fixture
def app(repo, home):
    return make_app(repo, home)


def add_identity(app, identity_id, name, email, *extra):
    assert main(["add", "-i", identity_id, "-n", name, "-e", email, *extra], app=app) == 0


def stored(app):
    return ConfigStore(app.context).load()


def test_add_list_and_switch(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com", "-d", "Day job")
    capsys.readouterr()

    assert main(["list"], app=app) == 0
    out = capsys.readouterr().out
    assert "[work] Alice Work <alice@company.com>" in out
    assert "Day job" in out

    assert main(["switch", "work"], app=app) == 0
    assert "✅ Switched to project identity: [work] Alice Work <alice@company.com>" in capsys.readouterr().out
    assert git(repo, "config", "--local", "user.email") == "alice@company.com"


def test_switch_twice_is_idempotent(app, repo, home):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    assert main(["switch", "work"], app=app) == 0
    first = (repo / ".git" / "config").read_text()
    assert main(["sw", "work"], app=app) == 0
    assert (repo / ".git" / "config").read_text() == first


def test_switch_global(app, home):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    assert main(["switch", "work", "--global"], app=app) == 0
    assert "Alice Work" in (home / ".gitconfig").read_text()


def test_switch_outside_repository_requires_global(tmp_path, home, capsys):
    plain = tmp_path / "plain"
    plain.mkdir()
    app = make_app(plain, home)
    add_identity(app, "work", "Alice Work", "alice@company.com")
    assert main(["switch", "work"], app=app) == 1
    assert "--global" in capsys.readouterr().err


def test_switch_unknown_identity(app, capsys):
    assert main(["switch", "ghost"], app=app) == 1
    assert "Identity 'ghost' not found" in capsys.readouterr().err


def test_switch_with_ssh_key_registers_key(repo, home, capsys):
    agent = FakeKeyAgent(existing=["~/.ssh/id_work"])
    app = make_app(repo, home, key_agent=agent)
    (home / ".ssh").mkdir()
    (home / ".ssh" / "id_work").write_text("key")
    add_identity(app, "work", "Alice Work", "alice@company.com", "--ssh-key", "~/.ssh/id_work")

    assert main(["switch", "work"], app=app) == 0
    assert agent.added == [Path("~/.ssh/id_work")]
    assert "github-com-work" in agent.hosts


def test_add_rejects_invalid_input(app, capsys):
    assert main(["add", "-i", "bad id", "-n", "A", "-e", "a@b.co"], app=app) == 1
    assert main(["add", "-i", "ok", "-n", "A", "-e", "nope"], app=app) == 1
    add_identity(app, "work", "Alice Work", "alice@company.com")
    assert main(["add", "-i", "work", "-n", "A", "-e", "a@b.co"], app=app) == 1
    assert "already exists" in capsys.readouterr().err


def test_add_prompts_for_missing_fields(repo, home):
    app = make_app(repo, home, answers=["work", "Alice Work", "alice@company.com"])
    assert main(["add"], app=app) == 0
    assert stored(app).require_identity("work").email == "alice@company.com"


def test_remove_asks_for_confirmation(repo, home):
    app = make_app(repo, home, answers=["n"])
    add_identity(app, "work", "Alice Work", "alice@company.com")
    assert main(["remove", "work"], app=app) == 0
    assert stored(app).find_identity("work") is not None

    assert main(["rm", "work", "--yes"], app=app) == 0
    assert stored(app).find_identity("work") is None


def test_current_reports_identity(app, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    main(["switch", "work"], app=app)
    capsys.readouterr()
    assert main(["current"], app=app) == 0
    out = capsys.readouterr().out
    assert "Effective: Alice Work <alice@company.com>" in out
    assert "Identity ID: [work]" in out


def test_rule_add_list_test_remove(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    assert main(["rule", "add", "-t", "remote", "-p", "github.com/other", "-i", "work"], app=app) == 0
    assert main(["rule", "add", "-t", "path", "-p", f"{repo}/**", "-i", "work", "--priority", "5"], app=app) == 0
    assert main(["rule", "add", "-t", "path", "-p", "/x", "-i", "ghost"], app=app) == 1

    rules = stored(app).rules
    assert [r.priority for r in rules] == [5, 100]

    capsys.readouterr()
    assert main(["rule", "test", "-p", str(repo / "src")], app=app) == 0
    out = capsys.readouterr().out
    assert "✅ Will use identity: [work]" in out

    assert main(["rule", "remove", "0", "--yes"], app=app) == 0
    assert [r.pattern for r in stored(app).rules] == ["github.com/other"]
    assert main(["rule", "remove", "3", "--yes"], app=app) == 1


def test_auto_uses_project_file_over_rules(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    add_identity(app, "personal", "Alice", "alice@home.org")
    main(["rule", "add", "-t", "path", "-p", f"{repo}/**", "-i", "work"], app=app)
    (repo / ".gid").write_text("personal\n")
    capsys.readouterr()

    assert main(["auto"], app=app) == 0
    assert "Using project config (.gid): [personal]" in capsys.readouterr().out
    assert git(repo, "config", "--local", "user.email") == "alice@home.org"


def test_auto_with_rule(app, repo):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    main(["rule", "add", "-t", "path", "-p", f"{repo}/**", "-i", "work"], app=app)
    assert main(["auto"], app=app) == 0
    assert git(repo, "config", "--local", "user.email") == "alice@company.com"


def test_auto_with_unknown_project_identity(app, repo, capsys):
    (repo / ".gid").write_text("ghost\n")
    assert main(["auto"], app=app) == 1
    assert "ghost" in capsys.readouterr().err


def test_doctor_reports_mismatch_and_fixes(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    add_identity(app, "personal", "Alice", "alice@home.org")
    main(["switch", "personal"], app=app)
    (repo / ".gid").write_text("work\n")
    capsys.readouterr()

    assert main(["doctor"], app=app) == 0
    out = capsys.readouterr().out
    assert "Expected Identity: [work]" in out
    assert "gid switch work" in out

    assert main(["doctor", "--fix"], app=app) == 0
    assert git(repo, "config", "--local", "user.email") == "alice@company.com"
    capsys.readouterr()
    assert main(["doctor"], app=app) == 0
    assert "No issues found" in capsys.readouterr().out


def test_doctor_strict_mode_fails(app, repo):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    config = stored(app)
    config.settings.strict_mode = True
    ConfigStore(app.context).save(config)
    (repo / ".gid").write_text("work\n")
    assert main(["doctor"], app=app) == 1


def test_audit_output(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    commit(repo, "one", name="Stranger", email="s@x.io")
    commit(repo, "two", name="Alice Work", email="alice@company.com")
    capsys.readouterr()

    assert main(["audit"], app=app) == 0
    out = capsys.readouterr().out
    assert "Total Commits: 2" in out
    assert "Identity Usage Statistics:" in out
    assert "[Unknown] Stranger <s@x.io> - 1 commits" in out
    assert "Unknown Identity (1):" in out
    assert "Audit complete: 1 repositories, 1 issues" in out


def test_audit_directory_of_repositories(tmp_path, home, capsys):
    base = tmp_path / "projects"
    commit(make_repo(base / "a"), "x")
    commit(make_repo(base / "b"), "y")
    app = make_app(base, home)
    assert main(["audit", "--path", str(base)], app=app) == 0
    assert "Audit complete: 2 repositories" in capsys.readouterr().out


def test_fix_commit_head(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    commit(repo, "oops", name="Stranger", email="s@x.io")
    assert main(["fix-commit", "--identity", "work", "--yes"], app=app) == 0
    assert "✅ Commit fixed" in capsys.readouterr().out
    assert git(repo, "log", "-1", "--format=%an <%ae>") == "Alice Work <alice@company.com>"


def test_fix_commit_uses_current_identity(app, repo):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    main(["switch", "work"], app=app)
    commit(repo, "oops", name="Stranger", email="s@x.io")
    assert main(["fix-commit", "-y"], app=app) == 0
    assert git(repo, "log", "-1", "--format=%ae") == "alice@company.com"


def test_fix_commit_refuses_dirty_tree(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    old = commit(repo, "oops", name="Stranger", email="s@x.io")
    (repo / "scratch.txt").write_text("x")
    assert main(["fix-commit", "-i", "work", "-y"], app=app) == 1
    assert "Uncommitted changes" in capsys.readouterr().err
    assert git(repo, "rev-parse", "HEAD") == old


def test_fix_commit_range_is_advisory(app, repo, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    for n in range(3):
        commit(repo, f"c{n}", name="Stranger", email="s@x.io")
    head = git(repo, "rev-parse", "HEAD")
    capsys.readouterr()
    assert main(["fix-commit", "--range", "HEAD~2..HEAD", "-i", "work", "-y"], app=app) == 0
    out = capsys.readouterr().out
    assert "Will fix 2 commits" in out
    assert "Batch fix not supported yet" in out
    assert git(repo, "rev-parse", "HEAD") == head


def test_export_and_import(app, repo, tmp_path, home, capsys):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    main(["rule", "add", "-t", "remote", "-p", "github.com/company", "-i", "work"], app=app)
    exported = tmp_path / "export.json"
    assert main(["export", str(exported)], app=app) == 0
    assert json.loads(exported.read_text())["identities"][0]["id"] == "work"

    other_home = tmp_path / "other-home"
    other_home.mkdir()
    fresh = make_app(repo, other_home)
    assert main(["import", str(exported)], app=fresh) == 0
    assert stored(fresh).to_dict() == stored(app).to_dict()

    add_identity(fresh, "oss", "Alice OSS", "alice@oss.dev")
    assert main(["import", str(exported), "--mode", "replace", "--yes"], app=fresh) == 0
    assert stored(fresh).find_identity("oss") is None
    assert (other_home / ".config" / "gid" / "config.json.backup").exists()


def test_import_merge(app, tmp_path):
    add_identity(app, "work", "Alice Work", "alice@company.com")
    incoming = tmp_path / "incoming.json"
    incoming.write_text(
        json.dumps(
            {
                "identities": [
                    {"id": "work", "name": "Other", "email": "o@x.io"},
                    {"id": "oss", "name": "Alice OSS", "email": "alice@oss.dev"},
                ]
            }
        )
    )
    assert main(["import", str(incoming), "--mode", "merge"], app=app) == 0
    config = stored(app)
    assert config.require_identity("work").name == "Alice Work"
    assert config.find_identity("oss") is not None


def test_invalid_config_file_is_reported(app, home, capsys):
    path = app.context.config_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{broken")
    assert main(["list"], app=app) == 1
    assert "Error:" in capsys.readouterr().err


def test_edit_validates_after_editor(app, capsys):
    app = make_app(app.context.cwd, app.context.home, editor="true")
    assert main(["edit"], app=app) == 0
    assert app.context.config_path.exists()
    assert "Configuration valid" in capsys.readouterr().out


def test_hook_install_and_uninstall(app, repo):
    assert main(["hook", "install"], app=app) == 0
    hook = repo / ".git" / "hooks" / "pre-commit"
    assert hook.exists()
    assert main(["hook", "status"], app=app) == 0
    assert main(["hook", "uninstall"], app=app) == 0
    assert not hook.exists()


@pytest.mark.parametrize("shell", ["bash", "zsh", "fish", "powershell"])
def test_completions(shell, capsys, app):
    assert main(["completions", shell], app=app) == 0
    out = capsys.readouterr().out
    assert "fix-commit" in out
    assert out == completion_script(shell, COMMAND_NAMES)


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


@pytest.mark.parametrize("document", [{"identities": ["x"]}, {"settings": []}, {"identities": 5}])
def test_malformed_config_shape_is_reported(app, capsys, document):
    path = app.context.config_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document))
    assert main(["list"], app=app) == 1
    assert capsys.readouterr().err.startswith("Error:")
