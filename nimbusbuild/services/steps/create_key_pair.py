"""步骤1: 生成临时 SSH 密钥对

每次构建都生成新的 RSA 密钥，源实例与本机之间只建立一次性的信任关系。
  - 私钥以 PEM 文本保存在状态袋中，供 SSH 连接步骤在进程内使用
  - 公钥以 authorized_keys 行格式写入临时文件，交给云客户端
  - debug 模式下额外把私钥写到工作目录，便于手工登录排查
"""

from __future__ import annotations

import io
import logging
import os
import tempfile

import paramiko

from nimbusbuild.core.exceptions import ExecutionError
from nimbusbuild.core.state import PRIVATE_KEY, PUBLIC_KEY_PATH, UI, StateBag
from nimbusbuild.core.step import Step, StepAction

logger = logging.getLogger(__name__)


class StepCreateKeyPair(Step):
    """生成临时 SSH 密钥对"""

    name = "create_key_pair"
    reads = (UI,)
    writes = (PRIVATE_KEY, PUBLIC_KEY_PATH)

    def __init__(self, debug: bool = False, debug_key_path: str = "", bits: int = 2048) -> None:
        self.debug = debug
        self.debug_key_path = debug_key_path
        self.bits = bits
        self._public_key_path = ""

    def execute(self, state: StateBag) -> StepAction:
        ui = state.get(UI)
        ui.say("为实例创建临时 SSH 密钥...")

        try:
            key = paramiko.RSAKey.generate(self.bits)
            buf = io.StringIO()
            key.write_private_key(buf)
        except (ValueError, paramiko.SSHException) as e:
            return self.halt(state, ExecutionError(f"创建临时 SSH 密钥失败: {e}"))
        private_pem = buf.getvalue()
        public_line = f"{key.get_name()} {key.get_base64()}\n"

        if self.debug and self.debug_key_path:
            ui.message(f"保存调试用私钥: {self.debug_key_path}")
            try:
                _write_private(self.debug_key_path, private_pem)
            except OSError as e:
                return self.halt(state, ExecutionError(f"保存调试私钥失败: {e}"))

        state.put(PRIVATE_KEY, private_pem)

        try:
            fd, path = tempfile.mkstemp(prefix="nimbus-publickey-", suffix=".pub")
        except OSError as e:
            return self.halt(state, ExecutionError(f"创建公钥临时文件失败: {e}"))
        # 文件一旦创建即归本步骤所有，写入失败也由 compensate 删除
        self._public_key_path = path
        ui.message(f"保存公钥: {path}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(public_line)
        except OSError as e:
            return self.halt(state, ExecutionError(f"保存公钥失败: {e}"))

        state.put(PUBLIC_KEY_PATH, path)
        return StepAction.CONTINUE

    def compensate(self, state: StateBag) -> None:
        # 调试私钥是诊断产物，保留
        if not self._public_key_path:
            return
        try:
            os.remove(self._public_key_path)
            logger.info("已删除临时公钥: %s", self._public_key_path)
        except FileNotFoundError:
            pass
        self._public_key_path = ""


def _write_private(path: str, pem: str) -> None:
    """以 0600 权限写入私钥"""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(pem)
