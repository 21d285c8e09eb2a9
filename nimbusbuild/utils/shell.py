"""外部命令执行工具：统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换。
云客户端的每一次调用（启动 / 终止 / 保存镜像）都经由这里。
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol

from nimbusbuild.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)

# 错误信息中保留的 stderr 最大长度
STDERR_LIMIT = 500


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议：抽象子进程调用

    测试时可注入脚本化的实现，无需 patch subprocess。
    """

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        try:
            r = subprocess.run(
                cmd, capture_output=True, text=True,
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(returncode=127, stdout="", stderr=str(e))
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                returncode=-1,
                stdout=_as_text(e.stdout),
                stderr=f"命令超时（{timeout}秒）",
            )
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


def _as_text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run_checked(
    executor: CommandExecutor, cmd: list[str], *, label: str = "cmd",
) -> CommandResult:
    """执行命令，失败抛 ExecutionError

    Args:
        executor: 命令执行器
        cmd: 参数列表（不经过 shell）
        label: 日志与错误信息中的标签
    """
    logger.info("  %s: %s", label, " ".join(cmd))
    r = executor.execute(cmd)
    if not r.success:
        detail = r.stderr.strip()[:STDERR_LIMIT] or r.stdout.strip()[-STDERR_LIMIT:]
        raise ExecutionError(f"{label}失败 (rc={r.returncode}): {detail}")
    return r
