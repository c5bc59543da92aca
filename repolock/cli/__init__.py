"""repolock 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from repolock import __version__
from repolock.core.config import init_config
from repolock.core.exceptions import ConfigError
from repolock.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option("--config-file", default="", envvar="REPOLOCK_CONFIG", help="repolock 配置文件路径")
def main(config_file: str) -> None:
    """repolock - 远程仓库依赖解析与缓存管理"""
    setup_logging(
        level=os.getenv("REPOLOCK_LOG_LEVEL", "INFO"),
        json_output=os.getenv("REPOLOCK_LOG_JSON", "") == "1",
    )
    try:
        init_config(config_file)
    except ConfigError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e


# 注册各领域子命令
from repolock.cli.cmd_install import register as _reg_install  # noqa: E402
from repolock.cli.cmd_cache import register as _reg_cache  # noqa: E402
from repolock.cli.cmd_lock import register as _reg_lock  # noqa: E402

_reg_install(main)
_reg_cache(main)
_reg_lock(main)
