"""步骤4: 对实例执行置备链"""

from __future__ import annotations

import logging

from nimbusbuild.core.exceptions import NimbusBuildError
from nimbusbuild.core.state import CONNECTION, PROVISIONER_CHAIN, UI, StateBag
from nimbusbuild.core.step import Step, StepAction

logger = logging.getLogger(__name__)


class StepRunProvisioners(Step):
    """运行置备链，失败时原样保留底层错误"""

    name = "run_provisioners"
    reads = (UI, CONNECTION, PROVISIONER_CHAIN)

    def execute(self, state: StateBag) -> StepAction:
        ui = state.get(UI)
        comm = state.get(CONNECTION)
        chain = state.get(PROVISIONER_CHAIN)

        logger.info("运行置备链")
        try:
            chain.run(ui, comm)
        except NimbusBuildError as e:
            return self.halt(state, e)
        return StepAction.CONTINUE
