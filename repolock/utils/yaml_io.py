"""YAML 文件统一读写工具

集中管理清单和配置文件的序列化/反序列化。
统一 encoding="utf-8"、空值保护、原子写入。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 清单文件最大大小限制 (10MB)
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """原子写入文本文件：同目录临时文件 + rename，防止中途崩溃导致半写入"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def read_yaml(path: str | Path) -> Any:
    """读取 YAML 文件，返回原始解析结果（可能是任意类型或 None）

    异常:
        FileNotFoundError: 文件不存在
        ValueError: 文件过大
        yaml.YAMLError: YAML 格式错误
    """
    p = Path(path)
    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ValueError(
            f"YAML 文件过大: {p} ({file_size} 字节), 超过限制 {MAX_YAML_SIZE} 字节"
        )
    with open(p, encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_yaml(path: str | Path) -> dict[str, Any]:
    """宽松读取 YAML 文件，用于配置等可缺省的文件

    文件不存在、为空或顶层不是字典时返回空字典。
    """
    p = Path(path)
    if not p.exists():
        return {}
    try:
        result = read_yaml(p)
    except yaml.YAMLError as e:
        logger.error("解析 YAML 文件失败: %s, 错误: %s", path, e)
        raise
    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning(
            "%s 内容不是字典类型 (实际类型: %s)，返回空字典",
            path, type(result).__name__,
        )
        return {}
    return result


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(
        data, default_flow_style=False, allow_unicode=True, sort_keys=False,
    )


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文件，保持键顺序"""
    atomic_write(Path(path), dump_yaml(data))
