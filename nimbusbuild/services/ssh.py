"""SSH 远程会话

- ssh_address / ssh_credential: 从状态袋推导连接地址与认证凭据
- SSHConnector: 基于 paramiko，在超时时间内反复尝试建立连接
- SSHCommunicator: 已建立的会话，执行远程命令与上传文件
"""

from __future__ import annotations

import io
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

import paramiko

from nimbusbuild.core.exceptions import DeployError, RemoteConnectError
from nimbusbuild.core.state import CONFIG, HOSTNAME, PRIVATE_KEY, StateBag

logger = logging.getLogger(__name__)

# 单次连接尝试的超时上限（秒）
ATTEMPT_TIMEOUT = 10.0
# 两次尝试之间的间隔（秒）
RETRY_INTERVAL = 5.0


@dataclass
class SSHCredential:
    """SSH 认证凭据"""

    username: str
    pkey: paramiko.PKey


def ssh_address(state: StateBag) -> str:
    """由实例主机名与配置端口得到 host:port"""
    cfg = state.get(CONFIG)
    hostname, ok = state.get_ok(HOSTNAME)
    if not ok or not hostname:
        raise DeployError("无法确定实例主机名：云客户端未输出 Hostname")
    return f"{hostname}:{cfg.ssh_port}"


def ssh_credential(username: str) -> Callable[[StateBag], SSHCredential]:
    """返回一个函数：用临时私钥构建 SSH 凭据"""

    def build(state: StateBag) -> SSHCredential:
        private_key = state.get(PRIVATE_KEY)
        try:
            pkey = paramiko.RSAKey.from_private_key(io.StringIO(private_key))
        except (paramiko.SSHException, ValueError) as e:
            raise RemoteConnectError(f"设置 SSH 配置失败: {e}") from e
        return SSHCredential(username=username, pkey=pkey)

    return build


class SSHCommunicator:
    """paramiko 会话封装"""

    def __init__(self, client: paramiko.SSHClient) -> None:
        self.client = client

    def run(self, command: str) -> tuple[int, str, str]:
        logger.debug("远程执行: %s", command)
        _, stdout, stderr = self.client.exec_command(command)
        # 两个流同时读取，任一方向的窗口写满都不会阻塞远端
        with ThreadPoolExecutor(max_workers=1) as pool:
            err_future = pool.submit(stderr.read)
            out = stdout.read().decode("utf-8", errors="replace")
            err = err_future.result().decode("utf-8", errors="replace")
        code = stdout.channel.recv_exit_status()
        return code, out, err

    def upload(self, local_path: str, remote_path: str) -> None:
        logger.debug("上传: %s -> %s", local_path, remote_path)
        sftp = self.client.open_sftp()
        try:
            sftp.put(local_path, remote_path)
        finally:
            sftp.close()

    def close(self) -> None:
        self.client.close()


class SSHConnector:
    """在 timeout 内反复尝试建立 SSH 连接"""

    def __init__(
        self,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
        retry_interval: float = RETRY_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client_factory = client_factory
        self.retry_interval = retry_interval
        self._sleep = sleep
        self._clock = clock

    def connect(
        self, host: str, port: int, credential: SSHCredential, *, timeout: float,
    ) -> SSHCommunicator:
        deadline = self._clock() + timeout
        attempt = 0
        last_error: Exception | None = None
        while True:
            attempt += 1
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            client = self.client_factory()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                logger.info("SSH 连接尝试 %d: %s:%d", attempt, host, port)
                client.connect(
                    hostname=host,
                    port=port,
                    username=credential.username,
                    pkey=credential.pkey,
                    timeout=min(ATTEMPT_TIMEOUT, remaining),
                    banner_timeout=min(ATTEMPT_TIMEOUT, remaining),
                    allow_agent=False,
                    look_for_keys=False,
                )
            except (paramiko.SSHException, OSError) as e:
                client.close()
                last_error = e
                logger.warning("SSH 连接失败: %s", e)
                if deadline - self._clock() <= self.retry_interval:
                    break
                self._sleep(self.retry_interval)
                continue
            logger.info("SSH 连接已建立")
            return SSHCommunicator(client)

        raise RemoteConnectError(
            f"等待 SSH 超时（{timeout:g}秒）: {host}:{port}"
            + (f": {last_error}" if last_error else "")
        )
