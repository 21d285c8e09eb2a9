"""CLI：构建与校验命令"""

from __future__ import annotations

import signal
import sys
from typing import Any, NoReturn

import click

from nimbusbuild.cli import parse_overrides
from nimbusbuild.cli.ui import ClickUi, pause_prompt
from nimbusbuild.core.exceptions import NimbusBuildError, ValidationError
from nimbusbuild.services.builder import ImageBuilder
from nimbusbuild.services.provisioners import ProvisionerChain, build_chain
from nimbusbuild.utils.logger import setup_logging
from nimbusbuild.utils.yaml_io import load_yaml

TEMPLATE_SECTIONS = ("builder", "provisioners")


def register(group: click.Group) -> None:
    group.add_command(build)
    group.add_command(validate)


def load_template(
    path: str, overrides: dict[str, str] | None = None,
) -> tuple[ImageBuilder, ProvisionerChain]:
    """读取构建模板，返回已 prepare 的构建器与置备链"""
    data = load_yaml(path)
    unknown = [k for k in data if k not in TEMPLATE_SECTIONS]
    if unknown:
        raise ValidationError(
            "构建模板无效", details=[f"未知顶层配置: {k}" for k in unknown],
        )

    errors: list[str] = []
    builder = ImageBuilder(pause_fn=pause_prompt)
    try:
        builder.prepare(data.get("builder") or {}, overrides or {})
    except ValidationError as e:
        errors.extend(e.details)

    chain = ProvisionerChain()
    try:
        chain = build_chain(data.get("provisioners"))
    except ValidationError as e:
        errors.extend(e.details)

    if errors:
        raise ValidationError("构建模板无效", details=errors)
    return builder, chain


def _fail(err: NimbusBuildError) -> NoReturn:
    click.secho(f"错误 [{err.code}]: {err}", fg="red", err=True)
    sys.exit(1)


@click.command()
@click.argument("template", type=click.Path(dir_okay=False))
@click.option("--var", multiple=True, help="覆盖 builder 配置，格式: key=value（可多次指定）")
def validate(template: str, var: tuple[str, ...]) -> None:
    """校验构建模板"""
    try:
        load_template(template, parse_overrides(var))
    except NimbusBuildError as e:
        _fail(e)
    click.echo("模板校验通过")


@click.command()
@click.argument("template", type=click.Path(dir_okay=False))
@click.option("--var", multiple=True, help="覆盖 builder 配置，格式: key=value（可多次指定）")
@click.option("--debug", is_flag=True, help="每个步骤完成后暂停，并保存调试私钥")
@click.option("--log-level", default=None, help="日志级别（DEBUG/INFO/WARNING）")
@click.option("--json-log", is_flag=True, help="以 JSON 格式输出日志")
def build(
    template: str, var: tuple[str, ...], debug: bool,
    log_level: str | None, json_log: bool,
) -> None:
    """按模板构建 Nimbus 镜像"""
    if log_level or json_log:
        setup_logging(level=log_level or "INFO", json_output=json_log)

    overrides: dict[str, Any] = dict(parse_overrides(var))
    if debug:
        overrides["debug"] = True

    ui = ClickUi()
    try:
        builder, chain = load_template(template, overrides)
    except NimbusBuildError as e:
        _fail(e)

    def _on_interrupt(signum: int, frame: Any) -> None:
        ui.error("收到中断，将在当前步骤完成后取消构建...")
        builder.cancel()

    previous = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        artifact = builder.run(ui, chain)
    except NimbusBuildError as e:
        _fail(e)
    finally:
        signal.signal(signal.SIGINT, previous)

    if artifact is None:
        click.echo("构建未产生镜像。")
        sys.exit(1)
    click.secho(f"构建完成，镜像: {artifact.id}", fg="green")
