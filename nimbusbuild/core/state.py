"""状态袋：构建步骤之间唯一的共享数据通道

键由 StateKey 描述（名称 + 期望类型），读取时统一做存在性与类型检查，
避免各步骤分散地做运行时断言。

约定:
  - 同一时刻只有正在执行的步骤写入状态袋
  - 必需键缺失属于步骤间契约被破坏，抛 StateContractError
  - 可选读取使用 get_ok
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from nimbusbuild.core.exceptions import StateContractError

T = TypeVar("T")


@dataclass(frozen=True)
class StateKey(Generic[T]):
    """状态袋中的一个键：名称 + 值类型"""

    name: str
    kind: type

    def __str__(self) -> str:
        return self.name


class StateBag:
    """线程安全的键值状态袋"""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, Any] = {}

    def put(self, key: StateKey[T], value: T) -> None:
        if not isinstance(value, key.kind):
            raise StateContractError(
                f"状态键 '{key.name}' 期望 {key.kind.__name__}，"
                f"实际写入 {type(value).__name__}"
            )
        with self._lock:
            self._data[key.name] = value

    def get(self, key: StateKey[T]) -> T:
        """读取必需键，缺失或类型不符抛 StateContractError"""
        value, ok = self.get_ok(key)
        if not ok:
            raise StateContractError(f"状态键缺失: '{key.name}'")
        return value  # type: ignore[return-value]

    def get_ok(self, key: StateKey[T]) -> tuple[T | None, bool]:
        """读取可选键，返回 (值, 是否存在)"""
        with self._lock:
            if key.name not in self._data:
                return None, False
            value = self._data[key.name]
        if not isinstance(value, key.kind):
            raise StateContractError(
                f"状态键 '{key.name}' 期望 {key.kind.__name__}，"
                f"实际为 {type(value).__name__}"
            )
        return value, True

    def remove(self, key: StateKey[Any]) -> None:
        with self._lock:
            self._data.pop(key.name, None)

    def __contains__(self, key: StateKey[Any]) -> bool:
        with self._lock:
            return key.name in self._data

    def keys(self) -> set[str]:
        with self._lock:
            return set(self._data)


# =========================================================================
# 约定的状态键
# =========================================================================

# 由编排器写入
CONFIG: StateKey[Any] = StateKey("config", object)
UI: StateKey[Any] = StateKey("ui", object)
CLOUD_CLIENT: StateKey[Any] = StateKey("cloud-client", object)
PROVISIONER_CHAIN: StateKey[Any] = StateKey("provisioner-chain", object)

# CreateKeyPair
PRIVATE_KEY: StateKey[str] = StateKey("private-key-material", str)
PUBLIC_KEY_PATH: StateKey[str] = StateKey("public-key-handle", str)

# LaunchInstance
CLOUD_CONF_PATH: StateKey[str] = StateKey("cloud-conf-path", str)
INSTANCE_ID: StateKey[str] = StateKey("remote-instance-id", str)
HOSTNAME: StateKey[str] = StateKey("remote-hostname", str)

# ConnectRemote
CONNECTION: StateKey[Any] = StateKey("connection-handle", object)

# CaptureImage
IMAGE_ID: StateKey[str] = StateKey("produced-image-id", str)

# 由任意停机步骤或 Runner 写入
FAILURE: StateKey[BaseException] = StateKey("failure", BaseException)
CANCELLED: StateKey[bool] = StateKey("cancelled", bool)
HALTED: StateKey[bool] = StateKey("halted", bool)
