"""终端 UI 输出"""

from __future__ import annotations

import click


class ClickUi:
    """通过 click 输出到终端；错误输出到 stderr"""

    def __init__(self, prefix: str = "nimbus") -> None:
        self.prefix = prefix

    def say(self, message: str) -> None:
        click.secho(f"==> {self.prefix}: {message}", bold=True)

    def message(self, message: str) -> None:
        click.echo(f"    {self.prefix}: {message}")

    def error(self, message: str) -> None:
        click.secho(f"==> {self.prefix}: {message}", fg="red", err=True)


def pause_prompt(step_name: str, state: object) -> None:
    """调试模式的暂停点：等待操作者按键"""
    click.pause(f"步骤 '{step_name}' 已完成，按任意键继续...")
