"""置备器（策略模式）

职责:
- 定义置备链：按顺序对已连接的实例执行置备动作
- 实现内置置备器（shell / file）
- 从构建模板的 provisioners 列表构建置备链

模板示例:
    provisioners:
      - type: shell
        inline:
          - yum -y update
      - type: file
        source: files/app.conf
        destination: /etc/app.conf
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from nimbusbuild.core.exceptions import ProvisionError, ValidationError
from nimbusbuild.core.protocols import Communicator, Provisioner, Ui

logger = logging.getLogger(__name__)


class ShellProvisioner:
    """逐条执行内联命令，任一条非零退出即失败"""

    name = "shell"

    def __init__(self, inline: list[str]) -> None:
        self.inline = list(inline)

    def provision(self, ui: Ui, communicator: Communicator) -> None:
        for cmd in self.inline:
            ui.message(f"执行: {cmd}")
            code, out, err = communicator.run(cmd)
            for line in out.splitlines():
                ui.message(f"    {line}")
            if code != 0:
                detail = err.strip()[:500]
                raise ProvisionError(f"命令失败 (rc={code}): {cmd}" + (f": {detail}" if detail else ""))


class FileProvisioner:
    """上传本地文件到实例"""

    name = "file"

    def __init__(self, source: str, destination: str) -> None:
        self.source = source
        self.destination = destination

    def provision(self, ui: Ui, communicator: Communicator) -> None:
        if not Path(self.source).is_file():
            raise ProvisionError(f"待上传文件不存在: {self.source}")
        ui.message(f"上传 {self.source} => {self.destination}")
        try:
            communicator.upload(self.source, self.destination)
        except OSError as e:
            raise ProvisionError(f"上传失败 {self.source}: {e}") from e


class ProvisionerChain:
    """按顺序执行的置备器列表"""

    def __init__(self, provisioners: list[Provisioner] | None = None) -> None:
        self.provisioners = list(provisioners or [])

    def __len__(self) -> int:
        return len(self.provisioners)

    def run(self, ui: Ui, communicator: Communicator) -> None:
        for p in self.provisioners:
            ui.say(f"运行置备器: {p.name}")
            p.provision(ui, communicator)
        logger.info("置备完成: %d 个置备器", len(self.provisioners))


# =========================================================================
# 置备器工厂
# =========================================================================


def _build_shell(raw: dict[str, Any]) -> Provisioner:
    inline = raw.get("inline")
    if isinstance(inline, str):
        inline = [inline]
    if not inline or not all(isinstance(c, str) for c in inline):
        raise ValueError("shell 置备器需要非空的 inline 命令列表")
    return ShellProvisioner(inline)


def _build_file(raw: dict[str, Any]) -> Provisioner:
    source = raw.get("source", "")
    destination = raw.get("destination", "")
    if not source or not destination:
        raise ValueError("file 置备器需要 source 和 destination")
    return FileProvisioner(str(source), str(destination))


_BUILDERS: dict[str, Callable[[dict[str, Any]], Provisioner]] = {
    "shell": _build_shell,
    "file": _build_file,
}


def build_chain(raws: list[dict[str, Any]] | None) -> ProvisionerChain:
    """从模板的 provisioners 列表构建置备链，问题汇总为一个 ValidationError"""
    errors: list[str] = []
    provisioners: list[Provisioner] = []
    for i, raw in enumerate(raws or []):
        if not isinstance(raw, dict):
            errors.append(f"provisioners[{i}] 必须是字典")
            continue
        kind = raw.get("type", "")
        factory = _BUILDERS.get(kind)
        if factory is None:
            errors.append(f"provisioners[{i}] 未知类型: {kind!r}")
            continue
        try:
            provisioners.append(factory(raw))
        except ValueError as e:
            errors.append(f"provisioners[{i}]: {e}")
    if errors:
        raise ValidationError("置备器配置无效", details=errors)
    return ProvisionerChain(provisioners)
