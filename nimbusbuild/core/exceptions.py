"""统一异常体系

所有业务异常继承 NimbusBuildError，替代散落的 ValueError / RuntimeError。
CLI 层可据此输出友好提示，步骤层据此把失败写入状态袋。
"""

from __future__ import annotations


class NimbusBuildError(Exception):
    """构建器基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(NimbusBuildError):
    """构建模板缺失或外部工具不可用"""

    code = "CONFIG_ERROR"


class ValidationError(NimbusBuildError):
    """输入数据校验失败（details 汇总全部问题）"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def __str__(self) -> str:
        if not self.details:
            return super().__str__()
        lines = "\n".join(f"  * {d}" for d in self.details)
        return f"{super().__str__()}\n{lines}"


class ExecutionError(NimbusBuildError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"


class StateContractError(NimbusBuildError):
    """状态袋契约被破坏：必需的键缺失或类型不符"""

    code = "STATE_CONTRACT"


class DeployError(NimbusBuildError):
    """实例未能部署：外部工具未公布实例 ID 或主机名"""

    code = "DEPLOY_ERROR"


class RemoteConnectError(NimbusBuildError):
    """超时内未能建立 SSH 会话"""

    code = "REMOTE_CONNECT_ERROR"


class ProvisionError(NimbusBuildError):
    """置备链中某个置备器失败"""

    code = "PROVISION_ERROR"
