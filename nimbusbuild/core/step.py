"""构建步骤基类

每个步骤声明它读取与写入的状态键（reads / writes），
Runner 在运行前据此检查整条步骤序列的生产者 / 消费者是否对齐。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Sequence

from nimbusbuild.core.exceptions import StateContractError
from nimbusbuild.core.state import FAILURE, UI, StateBag, StateKey

logger = logging.getLogger(__name__)


class StepAction(str, Enum):
    """步骤执行结果"""

    CONTINUE = "continue"
    HALT = "halt"


class Step(ABC):
    """构建步骤：execute 正向执行，compensate 尽力回滚

    compensate 必须容忍自身 execute 未完成的情况：
    只清理自己确实获取到的资源。
    """

    name: str = "step"
    reads: tuple[StateKey, ...] = ()
    writes: tuple[StateKey, ...] = ()

    @abstractmethod
    def execute(self, state: StateBag) -> StepAction:
        """执行步骤"""

    def compensate(self, state: StateBag) -> None:  # noqa: B027
        """回滚步骤副作用（默认无操作）"""

    def halt(self, state: StateBag, err: BaseException) -> StepAction:
        """记录失败并返回 HALT"""
        state.put(FAILURE, err)
        ui, ok = state.get_ok(UI)
        if ok:
            ui.error(str(err))
        logger.error("步骤 %s 失败: %s", self.name, err)
        return StepAction.HALT

    def __repr__(self) -> str:
        return f"<Step {self.name}>"


def check_sequence(steps: Sequence[Step], seeded: Iterable[str]) -> None:
    """检查每个步骤读取的键都由初始状态或更早的步骤产生"""
    available = set(seeded)
    problems: list[str] = []
    for step in steps:
        for key in step.reads:
            if key.name not in available:
                problems.append(f"{step.name} 读取 '{key.name}'，但没有更早的步骤产生它")
        available.update(k.name for k in step.writes)
    if problems:
        raise StateContractError("步骤序列不一致: " + "; ".join(problems))
