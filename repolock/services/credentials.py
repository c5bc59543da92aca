"""GitHub 令牌加载

优先级: 显式传入 > GITHUB_TOKEN 环境变量 > gh CLI 的 hosts.yml
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from repolock.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"


def gh_hosts_file() -> Path:
    return Path.home() / ".config" / "gh" / "hosts.yml"


def load_token(explicit: str = "", *, hosts_file: Path | None = None) -> str:
    """按优先级查找 GitHub 令牌

    参数:
        explicit: 命令行 --token 传入的令牌，非空白时直接使用
        hosts_file: gh CLI 的 hosts.yml 路径，默认 ~/.config/gh/hosts.yml

    返回:
        str: 去掉首尾空白的令牌；找不到时返回空字符串，由 validate_token 统一报错

    说明:
        hosts.yml 损坏时只记录警告，不抛出异常。

    示例:
        >>> load_token("ghp_xxx")
        'ghp_xxx'
    """
    if explicit.strip():
        return explicit.strip()

    env_token = os.getenv("GITHUB_TOKEN", "").strip()
    if env_token:
        logger.debug("使用 GITHUB_TOKEN 环境变量中的令牌")
        return env_token

    path = hosts_file or gh_hosts_file()
    try:
        hosts = load_yaml(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("读取 gh 配置失败 %s: %s", path, e)
        return ""
    entry = hosts.get(GITHUB_HOST) or {}
    token = str(entry.get("oauth_token", "") if isinstance(entry, dict) else "").strip()
    if token:
        logger.debug("使用 gh 配置中的令牌: %s", path)
    return token
