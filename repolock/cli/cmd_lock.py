"""CLI: 锁表查看命令"""

from __future__ import annotations

import click

from repolock.core.exceptions import RepolockError


def register(group: click.Group) -> None:
    group.add_command(lock_group)


@click.group(name="lock")
def lock_group() -> None:
    """锁表查看"""


@lock_group.command(name="show")
@click.option("--config", "-C", "manifest", default="./repolock.yml", help="清单文件路径")
def lock_show(manifest: str) -> None:
    """列出清单中的锁定记录"""
    from repolock.core.manifest import load_manifest

    try:
        table = load_manifest(manifest).lock_table()
    except RepolockError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e

    if not len(table):
        click.echo("锁表为空。")
        return
    for dep, rev in table.to_mapping().items():
        click.echo(f"  {dep:40s} {rev}")
