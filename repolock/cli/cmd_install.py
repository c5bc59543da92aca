"""CLI: 依赖安装命令"""

from __future__ import annotations

import click

from repolock.core.dep.models import ResolutionEvent
from repolock.core.exceptions import RepolockError


def register(group: click.Group) -> None:
    group.add_command(install)


def _echo_event(event: ResolutionEvent) -> None:
    if event.pins_branch:
        click.echo(f"  [{event.kind.value:24s}] {event.dep} -> {event.resolved_revision}")
    else:
        click.echo(f"  [{event.kind.value:24s}] {event.dep}")


@click.command()
@click.option("--config", "-C", "manifest", default="./repolock.yml", help="清单文件路径")
@click.option("--out-dir", "-o", default="", help="输出目录（默认取配置 out_dir）")
@click.option("--clean", "-c", is_flag=True, help="清空缓存后重新下载")
@click.option("--token", "-t", default="", help="GitHub 令牌")
@click.option("--force-update", is_flag=True, help="忽略锁表，重新查询所有分支")
@click.option("--prune-lock", is_flag=True, help="移除本次未遍历到的锁定记录")
def install(
    manifest: str, out_dir: str, clean: bool, token: str,
    force_update: bool, prune_lock: bool,
) -> None:
    """解析并安装清单中的全部依赖"""
    from repolock.services.install_service import InstallRequest, InstallService

    try:
        svc = InstallService.from_token(token)
        report = svc.install(
            InstallRequest(
                manifest_path=manifest, out_dir=out_dir, clean=clean,
                force_update=force_update, prune_lock=prune_lock,
            ),
            on_event=_echo_event,
        )
    except RepolockError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e

    lock_state = "已更新" if report.lock_changed else "无变化"
    click.echo(
        f"完成: {len(report.events)} 个节点, 安装 {len(report.installed)} 个依赖, "
        f"锁表{lock_state} ({len(report.lock_table)} 条)"
    )
