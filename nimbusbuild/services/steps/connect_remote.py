"""步骤3: 建立到源实例的 SSH 会话

地址与凭据分别由 address_fn / credential_fn 从状态袋推导，
连接本身委托给 Connector（默认 SSHConnector），超时语义由连接器负责。
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from nimbusbuild.core.exceptions import DeployError, RemoteConnectError
from nimbusbuild.core.protocols import Communicator, Connector
from nimbusbuild.core.state import CONFIG, CONNECTION, HOSTNAME, PRIVATE_KEY, UI, StateBag
from nimbusbuild.core.step import Step, StepAction
from nimbusbuild.services.ssh import SSHConnector

logger = logging.getLogger(__name__)


class StepConnectRemote(Step):
    """等待实例 SSH 可用并建立会话"""

    name = "connect_remote"
    reads = (CONFIG, UI, PRIVATE_KEY, HOSTNAME)
    writes = (CONNECTION,)

    def __init__(
        self,
        address_fn: Callable[[StateBag], str],
        credential_fn: Callable[[StateBag], Any],
        timeout: float,
        connector: Connector | None = None,
    ) -> None:
        self.address_fn = address_fn
        self.credential_fn = credential_fn
        self.timeout = timeout
        self.connector = connector or SSHConnector()
        self._comm: Communicator | None = None

    def execute(self, state: StateBag) -> StepAction:
        ui = state.get(UI)
        try:
            address = self.address_fn(state)
            credential = self.credential_fn(state)
        except (DeployError, RemoteConnectError) as e:
            return self.halt(state, e)

        host, _, port = address.rpartition(":")
        ui.say(f"等待 SSH 可用: {address}")
        try:
            comm = self.connector.connect(host, int(port), credential, timeout=self.timeout)
        except RemoteConnectError as e:
            return self.halt(state, e)

        self._comm = comm
        state.put(CONNECTION, comm)
        ui.say("已连接到 SSH")
        return StepAction.CONTINUE

    def compensate(self, state: StateBag) -> None:
        if self._comm is None:
            return
        logger.info("关闭 SSH 会话")
        self._comm.close()
        self._comm = None
