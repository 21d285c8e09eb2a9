"""步骤5: 把实例保存为新镜像

镜像名模板可引用 create_time（UTC Unix 秒），同一配置的多次构建得到不同镜像名。
保存成功的镜像是构建交付物，回滚路径永远不会删除它，因此本步骤没有补偿。
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from nimbusbuild.core.exceptions import DeployError, ExecutionError
from nimbusbuild.core.state import (
    CLOUD_CLIENT,
    CLOUD_CONF_PATH,
    CONFIG,
    IMAGE_ID,
    INSTANCE_ID,
    UI,
    StateBag,
)
from nimbusbuild.core.step import Step, StepAction
from nimbusbuild.core.template import render_image_name

logger = logging.getLogger(__name__)


class StepCaptureImage(Step):
    """保存镜像并记录镜像名"""

    name = "capture_image"
    reads = (CONFIG, UI, CLOUD_CLIENT, CLOUD_CONF_PATH, INSTANCE_ID)
    writes = (IMAGE_ID,)

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock

    def execute(self, state: StateBag) -> StepAction:
        cfg = state.get(CONFIG)
        ui = state.get(UI)
        client = state.get(CLOUD_CLIENT)
        conf_path = state.get(CLOUD_CONF_PATH)

        instance_id, ok = state.get_ok(INSTANCE_ID)
        if not ok or not instance_id:
            return self.halt(state, DeployError("无法确定实例 ID：云客户端未输出 workspace 句柄"))

        image_name = render_image_name(cfg.image_name, self.clock())
        ui.say(f"创建镜像: {image_name}")
        try:
            client.save_image(conf_path, instance_id, image_name, public=cfg.public_image)
        except ExecutionError as e:
            return self.halt(state, e)

        state.put(IMAGE_ID, image_name)
        logger.info("镜像已创建: %s", image_name)
        return StepAction.CONTINUE
