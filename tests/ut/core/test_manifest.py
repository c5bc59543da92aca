"""清单读写测试"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from repolock.core.dep.lock_table import LockTable
from repolock.core.exceptions import ManifestParseError
from repolock.core.manifest import load_manifest, save_lock


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "repolock.yml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadManifest:
    def test_full_manifest(self, tmp_path: Path) -> None:
        path = _write(tmp_path, """
deps:
  - acme/widget@main
  - acme/gizmo@v1.2.0
root:
  lock:
    acme/widget@main: abc123
  replace-file-option:
    go-package:
      regex: 'option go_package = "(.*)";'
      value: 'option go_package = "example.com/gen";'
""")
        m = load_manifest(path)

        assert [d.identity for d in m.dependencies] == ["acme/widget@main", "acme/gizmo@v1.2.0"]
        assert m.lock == {"acme/widget@main": "abc123"}
        assert len(m.file_replace_rules) == 1
        rule = m.file_replace_rules[0]
        assert rule.apply('option go_package = "old";') == 'option go_package = "example.com/gen";'
        assert m.lock_table().to_mapping() == {"acme/widget@main": "abc123"}

    def test_empty_file_has_no_deps(self, tmp_path: Path) -> None:
        m = load_manifest(_write(tmp_path, ""))
        assert m.dependencies == [] and m.lock == {} and m.file_replace_rules == []

    def test_shorthand_replace_rule(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "root:\n  replace-file-option:\n    'foo(\\d)': 'bar\\1'\n")
        rule = load_manifest(path).file_replace_rules[0]
        assert rule.apply("foo7") == "bar7"

    @pytest.mark.parametrize("text, reason", [
        ("deps: [", "YAML"),
        ("- a/b@v1", "顶层必须是字典"),
        ("deps: a/b@v1", "deps 必须是列表"),
        ("deps:\n  - 42", "必须是字符串"),
        ("deps:\n  - not-a-dep", "owner/repo@revision"),
        ("root: [1]", "root 必须是字典"),
        ("root:\n  lock: [1]", "root.lock"),
        ("root:\n  replace-file-option:\n    x: {value: y}", "regex/value"),
        ("root:\n  replace-file-option:\n    x: {regex: '(', value: y}", "正则无效"),
        ("root:\n  lock:\n    acme/widget@main:\n", "root.lock.acme/widget@main"),
        ("root:\n  lock:\n    acme/widget@main: 1234567\n", "非空字符串"),
        ("root:\n  lock:\n    acme/widget@main: \"  \"\n", "非空字符串"),
    ])
    def test_malformed(self, tmp_path: Path, text: str, reason: str) -> None:
        path = _write(tmp_path, text)
        with pytest.raises(ManifestParseError, match=reason) as exc_info:
            load_manifest(path)
        assert exc_info.value.path == str(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ManifestParseError, match="文件不存在"):
            load_manifest(tmp_path / "nope.yml")

    def test_invalid_lock_key(self, tmp_path: Path) -> None:
        m = load_manifest(_write(tmp_path, "root:\n  lock:\n    broken: abc\n"))
        with pytest.raises(ManifestParseError, match="lock"):
            m.lock_table()


class TestSaveLock:
    def test_only_lock_section_rewritten(self, tmp_path: Path) -> None:
        path = _write(tmp_path, """
deps:
  - acme/widget@main
root:
  lock:
    acme/widget@main: old
  replace-file-option:
    x: {regex: a, value: b}
""")
        save_lock(path, LockTable.from_mapping({
            "acme/widget@main": "new", "acme/extra@dev": "123",
        }))

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["deps"] == ["acme/widget@main"]
        assert data["root"]["lock"] == {"acme/extra@dev": "123", "acme/widget@main": "new"}
        assert data["root"]["replace-file-option"] == {"x": {"regex": "a", "value": "b"}}

    def test_creates_root_section(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "deps:\n  - a/b@main\n")
        save_lock(path, LockTable.from_mapping({"a/b@main": "1"}))
        assert load_manifest(path).lock == {"a/b@main": "1"}
