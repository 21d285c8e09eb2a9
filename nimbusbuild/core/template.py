"""字符串模板渲染

镜像名模板使用 str.format 风格的占位符，例如 "centos-{create_time}"。
可用字段由 IMAGE_NAME_FIELDS 限定，模板在 prepare 阶段即做语法检查。
"""

from __future__ import annotations

import string
from typing import Any

IMAGE_NAME_FIELDS = frozenset({"create_time"})

CLOUD_CONF_TEMPLATE = """\
vws.factory={factory}
vws.repository={repository}
vws.factory.identity={factory_identity}
vws.repository.type=cumulus
vws.repository.s3basekey=VMS
vws.repository.s3bucket=Repo
vws.repository.s3https=false
vws.repository.s3acceptallcerts=false
vws.repository.s3id={s3id}
vws.repository.s3key={s3key}
vws.repository.canonicalid={canonicalid}
nimbus.cert={cert}
nimbus.key={key}
"""


def check_template(template: str, allowed: frozenset[str] = IMAGE_NAME_FIELDS) -> None:
    """检查模板语法与字段名，不合法抛 ValueError"""
    for _, field_name, _, _ in string.Formatter().parse(template):
        if field_name is None:
            continue
        if field_name == "":
            raise ValueError("不支持位置占位符 '{}'")
        root = field_name.split(".", 1)[0].split("[", 1)[0]
        if root not in allowed:
            raise ValueError(
                f"未知字段 '{root}'（可用: {', '.join(sorted(allowed))}）"
            )

    # 格式说明符、转换符与属性访问只有真正渲染时才会出错，这里用样例值试渲染一次
    try:
        template.format(**{name: "0" for name in allowed})
    except (ValueError, AttributeError, KeyError, IndexError) as e:
        raise ValueError(f"模板无法渲染: {e}") from e


def render_image_name(template: str, create_time: int | float) -> str:
    """用创建时间（UTC Unix 秒）渲染镜像名"""
    check_template(template)
    return template.format(create_time=str(int(create_time)))


def render_cloud_conf(values: dict[str, Any]) -> str:
    """渲染云客户端的 key=value 配置文件内容"""
    return CLOUD_CONF_TEMPLATE.format(**values)
