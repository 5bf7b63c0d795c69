"""Tests for layered YAML configuration and template substitution."""

import sys

import pytest

from mergeloom.core.config import State, StoreConfig
from mergeloom.core.yaml_settings import YamlWithIncludesSettingsSource, cli_includes
from mergeloom.git.github import GitHubStore
from mergeloom.git.local import LocalGitStore
from mergeloom.git.store import MemoryObjectStore


@pytest.fixture
def workdir(tmp_path, monkeypatch, mock_argv):
    """Empty working directory so no stray ./mergeloom.yaml is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write(path, text):
    path.write_text(text)
    return path


def test_package_defaults_load(workdir):
    data = YamlWithIncludesSettingsSource(State)()

    assert data["config"]["store"]["backend"] == "local"
    assert data["config"]["commands"]["git"]["update_ref"] == "git update-ref {ref} {new} {old}"


def test_include_directive_is_overridden_by_includer(workdir):
    _write(workdir / "common.yaml", """
config:
  merge:
    base_branch: develop
    head_branch: common
""")
    main = _write(workdir / "main.yaml", """
include: common.yaml
config:
  merge:
    head_branch: feature
""")

    data = YamlWithIncludesSettingsSource(State, yaml_file=str(main))()

    assert data["config"]["merge"]["base_branch"] == "develop"
    assert data["config"]["merge"]["head_branch"] == "feature"
    # Package defaults stay underneath
    assert data["config"]["merge"]["author_name"] == "mergeloom"


def test_circular_include(workdir):
    _write(workdir / "a.yaml", "include: b.yaml\n")
    _write(workdir / "b.yaml", "include: a.yaml\n")

    with pytest.raises(ValueError, match="Circular include"):
        YamlWithIncludesSettingsSource(State, yaml_file=str(workdir / "a.yaml"))()


def test_cli_include_wins_over_local_file(workdir):
    _write(workdir / "mergeloom.yaml", "config:\n  resolve:\n    strategy: ours\n")
    extra = _write(workdir / "extra.yaml", "config:\n  resolve:\n    strategy: theirs\n")
    sys.argv = ["mergeloom", "resolve", "--include", str(extra)]

    data = YamlWithIncludesSettingsSource(State)()

    assert data["config"]["resolve"]["strategy"] == "theirs"


def test_cli_includes_parsing():
    argv = ["mergeloom", "--include", "a.yaml", "show", "--include", "b.yaml", "--include"]
    assert cli_includes(argv) == ["a.yaml", "b.yaml"]


class TestState:
    def test_templates_are_substituted(self, workdir):
        _write(workdir / "mergeloom.yaml", """
config:
  merge:
    message: "Sync {config.merge.base_branch} into {head_branch}"
""")

        state = State(config={"merge": {"base_branch": "main", "head_branch": "pr-7"}})

        assert state.config.merge.message == "Sync main into {head_branch}"
        assert "{" not in str(state.config.log_root)
        assert state.config.commands["git"]["cat_commit"] == "git cat-file commit {object}"

    def test_environment_fills_unset_fields(self, workdir, monkeypatch):
        monkeypatch.setenv("MERGELOOM_CONFIG__STORE__TOKEN", "ghp_example")

        state = State(config={"merge": {"base_branch": "main", "head_branch": "pr-7"}})

        assert state.config.store.token == "ghp_example"

    def test_log_level_reaches_console(self, workdir):
        state = State(config={
            "log_level": "debug",
            "merge": {"base_branch": "main", "head_branch": "pr-7"},
        })

        assert state.config.logger.console.level == "debug"
        assert state.runtime.merge.status == "pending"


class TestStoreConfig:
    def test_local_backend_uses_configured_commands(self, tmp_path):
        store = StoreConfig(backend="local", workdir=tmp_path).open(
            {"git": {"mktree": "git mktree -z --missing"}}
        )

        assert isinstance(store, LocalGitStore)
        assert store.commands["mktree"] == "git mktree -z --missing"
        assert store.commands["ls_tree"].startswith("git ls-tree")

    def test_memory_backend(self):
        assert isinstance(StoreConfig(backend="memory").open(), MemoryObjectStore)

    def test_github_requires_repository(self):
        with pytest.raises(ValueError):
            StoreConfig(backend="github").open()

    def test_github_backend_carries_limits(self):
        store = StoreConfig(
            backend="github", owner="octo", repo="repo", concurrency=3, rate_limit_wait=10
        ).open()

        assert isinstance(store, GitHubStore)
        assert store.max_rate_limit_wait == 10
        assert store._limiter._value == 3
