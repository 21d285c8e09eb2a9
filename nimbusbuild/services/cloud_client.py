"""Nimbus 云客户端封装

把 cloud-client.sh 的三种调用（启动实例 / 终止实例 / 保存镜像）
包装为方法。该工具只输出面向人的逐行文本，实例 ID 与主机名
通过两条独立的正则从 stdout 中提取。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from nimbusbuild.utils.shell import CommandExecutor, LocalExecutor, run_checked

logger = logging.getLogger(__name__)

INSTANCE_ID_RE = re.compile(r'Creating workspace "(vm-[0-9]+)"')
HOSTNAME_RE = re.compile(r"Hostname: (.+)$")


@dataclass
class LaunchResult:
    """启动实例的解析结果（未匹配到的字段为 None）"""

    instance_id: str | None
    hostname: str | None
    stdout: str = ""


def parse_launch_output(text: str) -> LaunchResult:
    """逐行提取实例 ID 与主机名；同一模式出现多次时以最后一次为准"""
    instance_id: str | None = None
    hostname: str | None = None
    for line in text.splitlines():
        m = INSTANCE_ID_RE.search(line)
        if m:
            instance_id = m.group(1)
        m = HOSTNAME_RE.search(line)
        if m:
            hostname = m.group(1)
    return LaunchResult(instance_id=instance_id, hostname=hostname, stdout=text)


class CloudClient:
    """cloud-client.sh 命令封装"""

    def __init__(self, command: str, executor: CommandExecutor | None = None) -> None:
        self.command = command
        self.executor = executor or LocalExecutor()

    def run_instance(
        self, conf_path: str, *, image: str, public_key_path: str, hours: int = 1,
    ) -> LaunchResult:
        """启动一个限时租用的实例"""
        r = run_checked(self.executor, [
            self.command, "--conf", conf_path, "--run",
            "--hours", str(hours),
            "--name", image,
            "--ssh-pubkey", public_key_path,
        ], label="启动源实例")
        result = parse_launch_output(r.stdout)
        logger.info("实例 ID: %s, 主机名: %s", result.instance_id, result.hostname)
        return result

    def terminate(self, conf_path: str, instance_id: str) -> None:
        run_checked(self.executor, [
            self.command, "--conf", conf_path,
            "--terminate", "--handle", instance_id,
        ], label="终止实例")

    def save_image(
        self, conf_path: str, instance_id: str, new_name: str, *, public: bool = False,
    ) -> None:
        """把实例保存为新镜像（该操作会终止源实例）"""
        args = [
            self.command, "--conf", conf_path,
            "--save", "--handle", instance_id,
            "--newname", new_name,
        ]
        if public:
            args.append("--common")
        run_checked(self.executor, args, label="保存镜像")
