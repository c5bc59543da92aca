"""清单文件读写

清单格式:
    deps:
      - owner/repo@revision
    root:
      lock:
        owner/repo@branch: <commit hash>
      replace-file-option:
        <name>:
          regex: <pattern>
          value: <replacement>

依赖树中嵌套的清单使用同一解析逻辑，但其 root 段在遍历时被忽略。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from repolock.core.dep.lock_table import LockTable
from repolock.core.dep.models import DependencyRef
from repolock.core.exceptions import ManifestParseError, ValidationError
from repolock.utils.yaml_io import read_yaml, save_yaml

logger = logging.getLogger(__name__)


@dataclass
class ReplaceRule:
    """安装时对文本文件执行的正则替换"""

    name: str
    regex: str
    value: str

    def apply(self, text: str) -> str:
        return re.sub(self.regex, self.value, text)


@dataclass
class Manifest:
    path: str
    dependencies: list[DependencyRef] = field(default_factory=list)
    lock: dict[str, str] = field(default_factory=dict)
    file_replace_rules: list[ReplaceRule] = field(default_factory=list)

    def lock_table(self) -> LockTable:
        try:
            return LockTable.from_mapping(self.lock)
        except ValidationError as e:
            raise ManifestParseError(self.path, f"lock 段: {e}") from e


def load_manifest(path: str | Path) -> Manifest:
    """读取并解析清单文件

    Raises:
        ManifestParseError: 文件不存在、YAML 格式错误或结构不符合约定
    """
    p = Path(path)
    try:
        data = read_yaml(p)
    except FileNotFoundError as e:
        raise ManifestParseError(str(p), "文件不存在") from e
    except yaml.YAMLError as e:
        raise ManifestParseError(str(p), f"YAML 格式错误: {e}") from e
    except (OSError, ValueError) as e:
        raise ManifestParseError(str(p), str(e)) from e
    return parse_manifest(data, str(p))


def parse_manifest(data: Any, path: str) -> Manifest:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ManifestParseError(path, f"顶层必须是字典，实际为 {type(data).__name__}")

    raw_deps = data.get("deps") or []
    if not isinstance(raw_deps, list):
        raise ManifestParseError(path, "deps 必须是列表")
    deps: list[DependencyRef] = []
    for item in raw_deps:
        if not isinstance(item, str):
            raise ManifestParseError(path, f"deps 项必须是字符串: {item!r}")
        try:
            deps.append(DependencyRef.parse(item))
        except ValidationError as e:
            raise ManifestParseError(path, str(e)) from e

    root = data.get("root") or {}
    if not isinstance(root, dict):
        raise ManifestParseError(path, "root 必须是字典")

    lock = root.get("lock") or {}
    if not isinstance(lock, dict):
        raise ManifestParseError(path, "root.lock 必须是字典")
    for key, value in lock.items():
        # 纯数字 hash 会被 YAML 读成 int，必须加引号
        if not isinstance(value, str) or not value.strip():
            raise ManifestParseError(
                path, f"root.lock.{key} 必须是非空字符串，实际为 {value!r}",
            )

    return Manifest(
        path=path,
        dependencies=deps,
        lock={str(k): v.strip() for k, v in lock.items()},
        file_replace_rules=_parse_replace_rules(root.get("replace-file-option") or {}, path),
    )


def _parse_replace_rules(raw: Any, path: str) -> list[ReplaceRule]:
    if not isinstance(raw, dict):
        raise ManifestParseError(path, "root.replace-file-option 必须是字典")
    rules: list[ReplaceRule] = []
    for name, item in raw.items():
        if isinstance(item, str):
            # 简写: 键即正则，值为替换内容
            rule = ReplaceRule(name=str(name), regex=str(name), value=item)
        elif isinstance(item, dict) and "regex" in item:
            rule = ReplaceRule(
                name=str(name), regex=str(item["regex"]), value=str(item.get("value", "")),
            )
        else:
            raise ManifestParseError(path, f"replace-file-option.{name} 需要 regex/value")
        try:
            re.compile(rule.regex)
        except re.error as e:
            raise ManifestParseError(path, f"replace-file-option.{name} 正则无效: {e}") from e
        rules.append(rule)
    return rules


def save_lock(path: str | Path, lock: LockTable) -> None:
    """仅改写清单的 root.lock 段，其余内容原样保留"""
    p = Path(path)
    try:
        data = read_yaml(p) or {}
    except yaml.YAMLError as e:
        raise ManifestParseError(str(p), f"YAML 格式错误: {e}") from e
    if not isinstance(data, dict):
        raise ManifestParseError(str(p), "顶层必须是字典")
    root = data.get("root")
    if not isinstance(root, dict):
        root = data["root"] = {}
    root["lock"] = lock.to_mapping()
    save_yaml(p, data)
    logger.info("已写回锁表 (%d 条): %s", len(lock), p)
