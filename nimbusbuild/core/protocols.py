"""协作方协议定义

集中定义构建核心与外部协作方之间的接口契约（Protocol）：
UI 输出、远程会话、SSH 连接器、置备器。
使用 typing.Protocol，使现有类无需修改继承关系即可满足协议。
"""

from __future__ import annotations

from typing import Any, Protocol


# =========================================================================
# UI 输出协议
# =========================================================================

class Ui(Protocol):
    """面向操作者的输出"""

    def say(self, message: str) -> None:
        """输出阶段性进度"""
        ...

    def message(self, message: str) -> None:
        """输出附加信息"""
        ...

    def error(self, message: str) -> None:
        """输出错误"""
        ...


# =========================================================================
# 远程会话协议
# =========================================================================

class Communicator(Protocol):
    """已建立的远程会话"""

    def run(self, command: str) -> tuple[int, str, str]:
        """执行远程命令，返回 (退出码, stdout, stderr)"""
        ...

    def upload(self, local_path: str, remote_path: str) -> None:
        """上传本地文件到远程路径"""
        ...

    def close(self) -> None:
        """关闭会话"""
        ...


class Connector(Protocol):
    """远程会话连接器"""

    def connect(
        self, host: str, port: int, credential: Any, *, timeout: float,
    ) -> Communicator:
        """在 timeout 秒内建立会话，失败抛 RemoteConnectError"""
        ...


# =========================================================================
# 置备器协议
# =========================================================================

class Provisioner(Protocol):
    """对远程实例执行的一个置备动作"""

    name: str

    def provision(self, ui: Ui, communicator: Communicator) -> None:
        """执行置备，失败抛 ProvisionError"""
        ...
