"""nimbus-build 命令行接口

main group 只负责日志初始化；各命令在子模块中定义并注册。
"""

import os

import click

from nimbusbuild import __version__
from nimbusbuild.utils.logger import setup_logging


def parse_overrides(pairs: tuple[str, ...]) -> dict[str, str]:
    """把 --var key=value 列表转换为 builder 配置覆盖项"""
    overrides: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"应为 key=value 格式: {pair!r}", param_hint="--var")
        overrides[key.strip()] = value.strip()
    return overrides


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="nimbus-build")
def main() -> None:
    """nimbus-build - 在 Nimbus 云上构建虚拟机镜像

    日志级别与格式可通过环境变量 NIMBUS_LOG_LEVEL / NIMBUS_LOG_JSON=1 调整。
    """
    setup_logging(
        level=os.getenv("NIMBUS_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("NIMBUS_LOG_JSON", "") == "1",
    )


from nimbusbuild.cli.cmd_build import register as _register_build  # noqa: E402

_register_build(main)
