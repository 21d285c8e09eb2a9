"""测试共享 fixture：脚本化云客户端 + 假 SSH 会话

  ScriptedExecutor   按 --run / --terminate / --save 返回预设的 CommandResult
  FakeConnector      返回 FakeCommunicator，可配置为连接失败
  RecordingUi        记录 say / message / error 输出
"""

from __future__ import annotations

import stat
from pathlib import Path
from typing import Any, Callable

import pytest

from nimbusbuild.core.config import BuildConfig
from nimbusbuild.core.exceptions import RemoteConnectError
from nimbusbuild.core.state import CLOUD_CLIENT, CONFIG, UI, StateBag
from nimbusbuild.services.cloud_client import CloudClient
from nimbusbuild.utils.shell import CommandResult

LAUNCH_STDOUT = "\n".join([
    "Launching workspace.",
    "",
    'Creating workspace "vm-123"... done.',
    "",
    "       IP address: 10.0.0.5",
    "         Hostname: 10.0.0.5",
    "       Start time: Mon Oct 19 10:00:00 UTC 2026",
    "    Shutdown time: Mon Oct 19 11:00:00 UTC 2026",
    "",
    "Waiting for updates.",
    '"vm-123" reached target state: Running',
])

OPS = ("--run", "--terminate", "--save")


class RecordingUi:
    def __init__(self) -> None:
        self.said: list[str] = []
        self.messages: list[str] = []
        self.errors: list[str] = []

    def say(self, message: str) -> None:
        self.said.append(message)

    def message(self, message: str) -> None:
        self.messages.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class ScriptedExecutor:
    """按操作类型返回预设结果的命令执行器"""

    def __init__(self, **responses: CommandResult) -> None:
        # 键: run / terminate / save
        self.responses = responses
        self.calls: list[list[str]] = []
        self.hooks: dict[str, Callable[[], None]] = {}

    def execute(self, cmd: list[str], **kwargs: Any) -> CommandResult:
        self.calls.append(list(cmd))
        op = next(a for a in OPS if a in cmd).lstrip("-")
        if op in self.hooks:
            self.hooks[op]()
        return self.responses.get(op, CommandResult(0, "", ""))

    def ops(self) -> list[str]:
        return [next(a for a in OPS if a in c).lstrip("-") for c in self.calls]

    def arg(self, op: str, flag: str) -> str:
        """返回某次操作中 flag 之后的参数值"""
        for c in self.calls:
            if f"--{op}" in c:
                return c[c.index(flag) + 1]
        raise AssertionError(f"没有 {op} 调用")


class FakeCommunicator:
    def __init__(self, results: dict[str, tuple[int, str, str]] | None = None) -> None:
        self.results = results or {}
        self.commands: list[str] = []
        self.uploads: list[tuple[str, str]] = []
        self.closed = False

    def run(self, command: str) -> tuple[int, str, str]:
        self.commands.append(command)
        return self.results.get(command, (0, "", ""))

    def upload(self, local_path: str, remote_path: str) -> None:
        self.uploads.append((local_path, remote_path))

    def close(self) -> None:
        self.closed = True


class FakeConnector:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, int, Any, float]] = []
        self.communicator = FakeCommunicator()
        self.on_connect: Callable[[], None] | None = None

    def connect(self, host: str, port: int, credential: Any, *, timeout: float) -> FakeCommunicator:
        self.calls.append((host, port, credential, timeout))
        if self.on_connect is not None:
            self.on_connect()
        if self.fail:
            raise RemoteConnectError(f"等待 SSH 超时（{timeout:g}秒）: {host}:{port}")
        return self.communicator


def make_cloud_client(root: Path, script: str = "#!/bin/sh\nexit 0\n") -> Path:
    """在 root 下创建 bin/cloud-client.sh，返回 root"""
    bin_dir = root / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    cmd = bin_dir / "cloud-client.sh"
    cmd.write_text(script, encoding="utf-8")
    cmd.chmod(cmd.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return root


@pytest.fixture()
def raw_config(tmp_path: Path) -> dict[str, Any]:
    root = make_cloud_client(tmp_path / "nimbus-cloud-client")
    return {
        "source_image": "centos-7.img",
        "ssh_username": "root",
        "image_name": "centos-packer-{create_time}",
        "cloud_client_path": str(root),
        "factory": "https://svc.uc.futuregrid.org:8443/wsrf/services/WorkspaceFactoryService",
        "repository": "svc.uc.futuregrid.org:8888",
        "factory_identity": "/O=Auto/OU=FutureGrid/CN=svc.uc.futuregrid.org",
        "s3id": "AKIDEXAMPLE",
        "s3key": "s3-secret",
        "canonicalid": "canonical-0001",
        "cert": "/home/user/.nimbus/usercert.pem",
        "key": "/home/user/.nimbus/userkey.pem",
    }


@pytest.fixture()
def config(raw_config: dict[str, Any]) -> BuildConfig:
    return BuildConfig.from_mapping(raw_config)


@pytest.fixture()
def ui() -> RecordingUi:
    return RecordingUi()


@pytest.fixture()
def executor() -> ScriptedExecutor:
    return ScriptedExecutor(run=CommandResult(0, LAUNCH_STDOUT, ""))


@pytest.fixture()
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture()
def bag(config: BuildConfig, ui: RecordingUi, executor: ScriptedExecutor) -> StateBag:
    """已写入 config / ui / cloud-client 的状态袋"""
    state = StateBag()
    state.put(CONFIG, config)
    state.put(UI, ui)
    state.put(CLOUD_CLIENT, CloudClient("/opt/nimbus/bin/cloud-client.sh", executor=executor))
    return state
