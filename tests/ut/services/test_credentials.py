"""令牌加载测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from repolock.services.credentials import gh_hosts_file, load_token


def _hosts(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "hosts.yml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadToken:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        hosts = _hosts(tmp_path, "github.com:\n  oauth_token: from-gh\n")
        assert load_token(" explicit ", hosts_file=hosts) == "explicit"

    def test_env_before_gh(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        hosts = _hosts(tmp_path, "github.com:\n  oauth_token: from-gh\n")
        assert load_token(hosts_file=hosts) == "from-env"

    def test_gh_hosts_file(self, tmp_path: Path) -> None:
        hosts = _hosts(tmp_path, "github.com:\n  user: octocat\n  oauth_token: from-gh\n")
        assert load_token(hosts_file=hosts) == "from-gh"

    def test_default_hosts_file_under_home(self) -> None:
        path = gh_hosts_file()
        path.parent.mkdir(parents=True)
        path.write_text("github.com:\n  oauth_token: home-token\n", encoding="utf-8")
        assert load_token() == "home-token"

    @pytest.mark.parametrize("text", ["", "other.host:\n  oauth_token: x\n", "github.com: plain\n", "a: ["])
    def test_nothing_found(self, tmp_path: Path, text: str) -> None:
        assert load_token(hosts_file=_hosts(tmp_path, text)) == ""

    def test_missing_hosts_file(self, tmp_path: Path) -> None:
        assert load_token(hosts_file=tmp_path / "none.yml") == ""
