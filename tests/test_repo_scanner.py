import pytest

from git_operations import NotARepositoryError
from repo_scanner import RepoScanner


def fake_repo(path):
    (path / ".git").mkdir(parents=True)
    return path


def test_scan_respects_depth(tmp_path):
    one = fake_repo(tmp_path / "one")
    two = fake_repo(tmp_path / "group" / "two")
    fake_repo(tmp_path / "a" / "b" / "three")
    (tmp_path / "empty").mkdir()

    assert sorted(RepoScanner.scan(tmp_path)) == sorted([one, two])
    assert RepoScanner.scan(tmp_path, max_depth=2) == [one]


def test_base_directory_itself_is_not_reported(tmp_path):
    fake_repo(tmp_path)
    inner = fake_repo(tmp_path / "inner")
    assert RepoScanner.scan(tmp_path) == [inner]


def test_does_not_descend_into_git_directories(tmp_path):
    repo = fake_repo(tmp_path / "repo")
    (repo / ".git" / "modules" / "sub" / ".git").mkdir(parents=True)
    assert RepoScanner.scan(tmp_path) == [repo]


def test_missing_directory(tmp_path):
    with pytest.raises(NotARepositoryError):
        RepoScanner.scan(tmp_path / "missing")
