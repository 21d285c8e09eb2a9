"""构建模板读取工具

统一 encoding="utf-8"、空值保护、大小限制。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from nimbusbuild.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# 构建模板最大大小限制 (1MB)
MAX_TEMPLATE_SIZE = 1024 * 1024


def load_yaml(path: str | Path) -> dict[str, Any]:
    """安全读取 YAML 构建模板

    参数:
        path: YAML 文件路径

    返回:
        dict: 解析后的字典；文件为空时返回空字典

    异常:
        ConfigError: 文件不存在、过大、格式错误或顶层不是字典
    """
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"构建模板不存在: {p}")

    size = p.stat().st_size
    if size > MAX_TEMPLATE_SIZE:
        raise ConfigError(
            f"构建模板过大: {p} ({size} 字节), 超过限制 {MAX_TEMPLATE_SIZE} 字节"
        )

    try:
        with open(p, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("解析 YAML 文件失败: %s, 错误: %s", p, e)
        raise ConfigError(f"构建模板格式错误: {p}: {e}") from e
    except OSError as e:
        logger.error("读取文件失败: %s, 错误: %s", p, e)
        raise ConfigError(f"无法读取构建模板: {p}: {e}") from e

    if result is None:
        return {}
    if not isinstance(result, dict):
        raise ConfigError(
            f"构建模板顶层必须是字典 (实际类型: {type(result).__name__}): {p}"
        )
    return result
