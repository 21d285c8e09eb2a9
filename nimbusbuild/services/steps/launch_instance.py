"""步骤2: 启动 Nimbus 源实例

1. 按配置渲染云客户端配置文件，写入临时路径（后续每次调用云客户端都需要）
2. 调用 cloud-client.sh --run 启动限时实例
3. 从 stdout 中解析实例 ID 与主机名

未解析出的字段不写入状态袋，由后续步骤报告部署失败。
"""

from __future__ import annotations

import logging
import os
import tempfile

from nimbusbuild.core.exceptions import ExecutionError
from nimbusbuild.core.state import (
    CLOUD_CLIENT,
    CLOUD_CONF_PATH,
    CONFIG,
    HOSTNAME,
    IMAGE_ID,
    INSTANCE_ID,
    PUBLIC_KEY_PATH,
    UI,
    StateBag,
)
from nimbusbuild.core.step import Step, StepAction
from nimbusbuild.core.template import render_cloud_conf

logger = logging.getLogger(__name__)


class StepLaunchInstance(Step):
    """启动源实例并记录其 ID / 主机名"""

    name = "launch_instance"
    reads = (CONFIG, UI, CLOUD_CLIENT, PUBLIC_KEY_PATH)
    writes = (CLOUD_CONF_PATH, INSTANCE_ID, HOSTNAME)

    def __init__(self) -> None:
        self.instance_id = ""
        self.hostname = ""

    def execute(self, state: StateBag) -> StepAction:
        cfg = state.get(CONFIG)
        ui = state.get(UI)
        client = state.get(CLOUD_CLIENT)
        public_key_path = state.get(PUBLIC_KEY_PATH)

        try:
            conf_path = _write_cloud_conf(render_cloud_conf(cfg.to_dict(redact=False)))
        except OSError as e:
            return self.halt(state, ExecutionError(f"准备云客户端配置文件失败: {e}"))
        state.put(CLOUD_CONF_PATH, conf_path)
        logger.info("云客户端配置文件: %s", conf_path)

        ui.say("启动 Nimbus 源实例...")
        try:
            result = client.run_instance(
                conf_path,
                image=cfg.source_image,
                public_key_path=public_key_path,
                hours=cfg.lease_hours,
            )
        except ExecutionError as e:
            return self.halt(state, e)

        if result.instance_id:
            self.instance_id = result.instance_id
            state.put(INSTANCE_ID, result.instance_id)
        else:
            logger.warning("云客户端输出中未找到实例 ID")
        if result.hostname:
            self.hostname = result.hostname
            state.put(HOSTNAME, result.hostname)
        else:
            logger.warning("云客户端输出中未找到主机名")

        ui.message(f"实例: {self.instance_id or '?'} ({self.hostname or '?'})")
        return StepAction.CONTINUE

    def compensate(self, state: StateBag) -> None:
        if not self.instance_id:
            return
        ui = state.get(UI)

        # 保存镜像会顺带终止源实例，避免重复终止
        if IMAGE_ID in state:
            ui.say("源实例已随镜像创建终止")
            return

        ui.say(f"终止源实例 {self.instance_id}...")
        client = state.get(CLOUD_CLIENT)
        conf_path = state.get(CLOUD_CONF_PATH)
        try:
            client.terminate(conf_path, self.instance_id)
        except ExecutionError as e:
            ui.error(f"终止实例失败，实例可能仍在运行: {e}")
            return
        logger.info("已终止实例: %s", self.instance_id)
        self.instance_id = ""


def _write_cloud_conf(content: str) -> str:
    fd, path = tempfile.mkstemp(prefix="nimbus-cloudconf-", suffix=".conf")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError:
        os.remove(path)
        raise
    return path
