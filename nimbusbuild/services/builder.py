"""Nimbus 镜像构建器：协调 5 步流水线

职责:
- prepare: 校验配置（全部问题一次性汇总）
- run: 构建步骤序列与初始状态袋，选择 Runner 策略并执行，
  把最终状态转换为 Artifact 或抛出记录的错误
- cancel: 请求在下一个步骤边界停止
- 无论成功失败，最后删除云客户端配置临时文件
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable

from nimbusbuild.core.artifact import Artifact
from nimbusbuild.core.config import BuildConfig
from nimbusbuild.core.exceptions import ConfigError
from nimbusbuild.core.protocols import Connector, Ui
from nimbusbuild.core.runner import BasicRunner, DebugRunner, PauseFn, RunnerState
from nimbusbuild.core.state import (
    CLOUD_CLIENT,
    CLOUD_CONF_PATH,
    CONFIG,
    FAILURE,
    IMAGE_ID,
    PROVISIONER_CHAIN,
    UI,
    StateBag,
)
from nimbusbuild.core.step import Step
from nimbusbuild.services.cloud_client import CloudClient
from nimbusbuild.services.provisioners import ProvisionerChain
from nimbusbuild.services.ssh import ssh_address, ssh_credential
from nimbusbuild.services.steps import (
    StepCaptureImage,
    StepConnectRemote,
    StepCreateKeyPair,
    StepLaunchInstance,
    StepRunProvisioners,
)
from nimbusbuild.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

BUILDER_ID = "nimbusproject.nimbus"


class ImageBuilder:
    """Nimbus 镜像构建器（一次调用完成一个完整生命周期）"""

    def __init__(
        self,
        builder_id: str = BUILDER_ID,
        *,
        executor: CommandExecutor | None = None,
        connector: Connector | None = None,
        pause_fn: PauseFn | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.builder_id = builder_id
        self.executor = executor
        self.connector = connector
        self.pause_fn = pause_fn
        self.clock = clock
        self.config: BuildConfig | None = None
        self.runner: BasicRunner | None = None
        self._cancel_requested = threading.Event()

    def prepare(self, *raws: dict) -> list[str]:
        """校验并保存配置，返回警告列表；配置无效抛 ValidationError"""
        self.config = BuildConfig.from_mapping(*raws)
        return []

    def steps(self) -> list[Step]:
        cfg = self._require_config()
        return [
            StepCreateKeyPair(debug=cfg.debug, debug_key_path=cfg.debug_key_path),
            StepLaunchInstance(),
            StepConnectRemote(
                address_fn=ssh_address,
                credential_fn=ssh_credential(cfg.ssh_username),
                timeout=cfg.ssh_timeout_seconds,
                connector=self.connector,
            ),
            StepRunProvisioners(),
            StepCaptureImage(clock=self.clock),
        ]

    def run(self, ui: Ui, provisioners: ProvisionerChain | None = None) -> Artifact | None:
        """执行构建；失败时抛出步骤记录的错误，被取消时返回 None"""
        cfg = self._require_config()
        command = self._resolve_cloud_client(cfg)
        logger.info("云客户端: %s", command)

        state = StateBag()
        state.put(CONFIG, cfg)
        state.put(UI, ui)
        state.put(CLOUD_CLIENT, CloudClient(command, executor=self.executor))
        state.put(PROVISIONER_CHAIN, provisioners or ProvisionerChain())

        steps = self.steps()
        if cfg.debug:
            self.runner = DebugRunner(steps, pause_fn=self.pause_fn)
        else:
            self.runner = BasicRunner(steps)
        if self._cancel_requested.is_set():
            self.runner.cancel()

        try:
            result = self.runner.run(state)
        finally:
            _remove_cloud_conf(state)

        failure, failed = state.get_ok(FAILURE)
        if failed:
            raise failure
        if result is RunnerState.CANCELLED:
            ui.error("构建已取消")
            return None

        image, ok = state.get_ok(IMAGE_ID)
        if not ok:
            return None
        return Artifact(image=image, builder_id=self.builder_id)

    def cancel(self) -> None:
        """请求取消（可在信号处理器中调用）"""
        self._cancel_requested.set()
        if self.runner is not None:
            logger.info("正在取消步骤 Runner...")
            self.runner.cancel()

    def _require_config(self) -> BuildConfig:
        if self.config is None:
            raise ConfigError("必须先调用 prepare() 校验配置")
        return self.config

    @staticmethod
    def _resolve_cloud_client(cfg: BuildConfig) -> str:
        path = cfg.cloud_client_command
        if not path.is_file() or not os.access(path, os.X_OK):
            raise ConfigError(f"找不到可执行的云客户端: {path}")
        return str(path)


def _remove_cloud_conf(state: StateBag) -> None:
    path, ok = state.get_ok(CLOUD_CONF_PATH)
    if not ok:
        return
    try:
        os.remove(path)
        logger.info("已删除云客户端配置文件: %s", path)
    except FileNotFoundError:
        pass
