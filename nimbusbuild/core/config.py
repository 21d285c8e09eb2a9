"""构建配置

扁平 key/value 映射 → BuildConfig。
  - 未知键拒绝（封闭 schema）
  - 可选字段套用默认值
  - 全部问题汇总到一个 ValidationError，而不是遇到第一个就失败
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from nimbusbuild.core.exceptions import ValidationError
from nimbusbuild.core.template import check_template

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "source_image",
    "ssh_username",
    "image_name",
    "cloud_client_path",
    "factory",
    "repository",
    "factory_identity",
    "s3id",
    "s3key",
    "canonicalid",
    "cert",
    "key",
)

DEFAULT_SSH_PORT = 22

# 日志输出时需要遮盖的字段
SECRET_FIELDS = frozenset({"s3key", "key"})

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """解析 Go 风格的时长字符串（如 "1m30s"、"500ms"），返回秒数"""
    s = text.strip()
    if not s:
        raise ValueError("时长为空")
    sign = 1.0
    if s[0] in "+-":
        sign = -1.0 if s[0] == "-" else 1.0
        s = s[1:]
    if s == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(s):
        m = _DURATION_PART_RE.match(s, pos)
        if m is None:
            raise ValueError(f"无效的时长: {text!r}")
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos == 0:
        raise ValueError(f"无效的时长: {text!r}")
    return sign * total


@dataclass
class BuildConfig:
    """Nimbus 构建参数（prepare 之后只读）"""

    # 源实例
    source_image: str = ""
    ssh_username: str = ""
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_timeout: str = "1m"
    lease_hours: int = 1

    # 产出镜像
    image_name: str = ""
    public_image: bool = False

    # Nimbus 云客户端
    cloud_client_path: str = ""
    factory: str = ""
    repository: str = ""
    factory_identity: str = ""
    s3id: str = ""
    s3key: str = ""
    canonicalid: str = ""
    cert: str = ""
    key: str = ""

    # 调试
    debug: bool = False
    build_name: str = "nimbus"

    def __post_init__(self) -> None:
        # 端口 0 视为未设置
        if self.ssh_port == 0:
            self.ssh_port = DEFAULT_SSH_PORT

    @property
    def ssh_timeout_seconds(self) -> float:
        return parse_duration(self.ssh_timeout)

    @property
    def cloud_client_command(self) -> Path:
        return Path(self.cloud_client_path) / "bin" / "cloud-client.sh"

    @property
    def debug_key_path(self) -> str:
        return f"nimbus_{self.build_name}.pem"

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if redact:
            for name in SECRET_FIELDS:
                if data.get(name):
                    data[name] = "******"
        return data

    @classmethod
    def from_mapping(cls, *raws: Mapping[str, Any]) -> BuildConfig:
        """合并一个或多个扁平映射（后者覆盖前者）并校验"""
        merged: dict[str, Any] = {}
        errors: list[str] = []
        for raw in raws:
            if raw is None:
                continue
            if not isinstance(raw, Mapping):
                errors.append(f"配置必须是键值映射，实际为 {type(raw).__name__}")
                continue
            merged.update(raw)

        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for k, v in merged.items():
            if k not in known:
                errors.append(f"未知配置项: {k}")
                continue
            try:
                values[k] = _coerce(k, v, type(getattr(cls, k)))
            except ValueError as e:
                errors.append(str(e))

        cfg = cls(**values)
        errors.extend(cfg.validate())
        if errors:
            raise ValidationError("构建配置无效", details=errors)
        logger.info("配置: %s", cfg.to_dict())
        return cfg

    def validate(self) -> list[str]:
        """返回所有校验问题（空列表表示通过）"""
        errors: list[str] = []
        for name in REQUIRED_FIELDS:
            if not getattr(self, name):
                errors.append(f"必须指定 {name}")

        try:
            if self.ssh_timeout_seconds <= 0:
                errors.append("ssh_timeout 必须大于 0")
        except ValueError as e:
            errors.append(f"解析 ssh_timeout 失败: {e}")

        if not 0 < self.ssh_port < 65536:
            errors.append(f"ssh_port 超出范围: {self.ssh_port}")
        if self.lease_hours < 1:
            errors.append("lease_hours 至少为 1")

        if self.image_name:
            try:
                check_template(self.image_name)
            except ValueError as e:
                errors.append(f"解析 image_name 失败: {e}")
        return errors


def _coerce(name: str, value: Any, kind: type) -> Any:
    """把原始值转换为字段类型，无法转换抛 ValueError"""
    if kind is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "yes", "no"):
            return value.lower() in ("true", "1", "yes")
        raise ValueError(f"{name} 必须是布尔值: {value!r}")
    if kind is int:
        if isinstance(value, bool):
            raise ValueError(f"{name} 必须是整数: {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise ValueError(f"{name} 必须是整数: {value!r}")
    if isinstance(value, (dict, list, tuple, set)):
        raise ValueError(f"{name} 必须是字符串: {value!r}")
    return "" if value is None else str(value)
