"""CLI: 缓存管理命令"""

from __future__ import annotations

import click

from repolock.core.exceptions import RepolockError


def register(group: click.Group) -> None:
    group.add_command(cache_group)


def _store():
    from repolock.core.config import get_config
    from repolock.core.dep.cache import CacheStore
    cfg = get_config()
    return CacheStore(cfg.cache_dir, cfg.manifest_name)


@click.group(name="cache")
def cache_group() -> None:
    """本地缓存管理"""


@cache_group.command(name="path")
def cache_path() -> None:
    """显示缓存根目录"""
    click.echo(str(_store().root))


@cache_group.command(name="list")
def cache_list() -> None:
    """列出已缓存的依赖"""
    entries = _store().list_entries()
    if not entries:
        click.echo("缓存为空。")
        return
    for dep in entries:
        click.echo(f"  {dep}")


@cache_group.command(name="clear")
def cache_clear() -> None:
    """清空缓存"""
    store = _store()
    try:
        store.clear()
    except RepolockError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e
    click.echo(f"已清空: {store.root}")
