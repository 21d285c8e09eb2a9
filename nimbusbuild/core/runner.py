"""步骤执行引擎

状态机:
  IDLE → RUNNING(i) → COMPLETED | HALTED | CANCELLED

规则:
  - 每个步骤边界检查取消标志；取消不会打断正在执行的步骤
  - 步骤返回 HALT（或抛出异常）即停机
  - 无论以何种状态结束，都按进入顺序的逆序对已进入的步骤执行 compensate
  - 补偿失败只记录，不影响更早步骤的补偿，也不覆盖原始错误

两种策略:
  - BasicRunner: 一路执行到底
  - DebugRunner: 每个步骤成功后暂停，等待外部 resume
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Sequence

from nimbusbuild.core.exceptions import ExecutionError, NimbusBuildError, StateContractError
from nimbusbuild.core.state import CANCELLED, FAILURE, HALTED, UI, StateBag
from nimbusbuild.core.step import Step, StepAction, check_sequence
from nimbusbuild.utils.logger import bind_step

logger = logging.getLogger(__name__)

PauseFn = Callable[[str, StateBag], None]


class RunnerState(str, Enum):
    """Runner 所处阶段"""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    HALTED = "halted"
    CANCELLED = "cancelled"


class BasicRunner:
    """顺序执行步骤，停机或取消时逆序补偿"""

    def __init__(self, steps: Sequence[Step]) -> None:
        self.steps = list(steps)
        self.state = RunnerState.IDLE
        self.current_index = -1
        self.compensation_errors: list[tuple[str, Exception]] = []
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._done = threading.Event()

    def run(self, state: StateBag) -> RunnerState:
        """执行整条步骤序列，返回终止状态（仅可调用一次）"""
        with self._lock:
            if self.state is not RunnerState.IDLE:
                raise RuntimeError(f"Runner 已处于 {self.state.value} 状态，不能重复运行")
            self.state = RunnerState.RUNNING

        entered: list[Step] = []
        final = RunnerState.COMPLETED
        try:
            check_sequence(self.steps, state.keys())
            for i, step in enumerate(self.steps):
                if self._cancel.is_set():
                    logger.info("在步骤 %s 之前检测到取消请求", step.name)
                    final = RunnerState.CANCELLED
                    break
                self.current_index = i
                entered.append(step)
                if self._execute(step, state) is StepAction.HALT:
                    final = RunnerState.HALTED
                    break
                self._after_step(step, state)
        except StateContractError as e:
            state.put(FAILURE, e)
            logger.error("步骤序列校验失败: %s", e)
            final = RunnerState.HALTED
        finally:
            state.put(CANCELLED, final is RunnerState.CANCELLED)
            state.put(HALTED, final is RunnerState.HALTED)
            self._unwind(entered, state)
            self.state = final
            self._done.set()

        logger.info("Runner 结束: %s", final.value)
        return final

    def _execute(self, step: Step, state: StateBag) -> StepAction:
        logger.info("执行步骤 [%d/%d] %s", self.current_index + 1, len(self.steps), step.name)
        with bind_step(step.name):
            try:
                action = step.execute(state)
            except Exception as e:  # 步骤内未捕获的异常一律视为停机
                logger.exception("步骤 %s 抛出异常", step.name)
                if FAILURE not in state:
                    err = _as_build_error(step, e)
                    state.put(FAILURE, err)
                    _report_error(state, str(err))
                return StepAction.HALT

        if action is StepAction.HALT and FAILURE not in state:
            state.put(FAILURE, NimbusBuildError(f"步骤 {step.name} 停机但未记录错误"))
        return action

    def _after_step(self, step: Step, state: StateBag) -> None:
        """步骤成功后的钩子（DebugRunner 在此暂停）"""

    def _unwind(self, entered: list[Step], state: StateBag) -> None:
        for step in reversed(entered):
            logger.debug("补偿步骤 %s", step.name)
            with bind_step(step.name):
                try:
                    step.compensate(state)
                except Exception as e:  # 补偿尽力而为，继续回滚更早的步骤
                    logger.exception("步骤 %s 补偿失败", step.name)
                    self.compensation_errors.append((step.name, e))
                    _report_error(state, f"清理步骤 {step.name} 失败: {e}")

    def cancel(self) -> None:
        """请求取消：在下一个步骤边界生效（可从其他线程 / 信号处理器调用）"""
        logger.info("收到取消请求")
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """等待 run 结束，返回是否已结束"""
        return self._done.wait(timeout)


class DebugRunner(BasicRunner):
    """调试策略：每个步骤成功执行后暂停，等待外部确认

    pause_fn 为阻塞函数 (step_name, state) -> None，例如 CLI 的“按键继续”；
    未提供时等待 resume() 信号。
    """

    def __init__(self, steps: Sequence[Step], pause_fn: PauseFn | None = None) -> None:
        super().__init__(steps)
        self.pause_fn = pause_fn
        self._resume = threading.Event()

    def _after_step(self, step: Step, state: StateBag) -> None:
        if self._cancel.is_set():
            return
        logger.info("步骤 %s 执行完成，暂停等待继续", step.name)
        if self.pause_fn is not None:
            self.pause_fn(step.name, state)
            return
        self._resume.wait()
        self._resume.clear()

    def resume(self) -> None:
        """放行当前暂停点"""
        self._resume.set()

    def cancel(self) -> None:
        super().cancel()
        # 暂停中的 Runner 需要被唤醒才能到达下一个步骤边界
        self._resume.set()


def _report_error(state: StateBag, message: str) -> None:
    ui, ok = state.get_ok(UI)
    if ok:
        ui.error(message)


def _as_build_error(step: Step, exc: Exception) -> NimbusBuildError:
    """非业务异常包装为 ExecutionError，原异常保留为 __cause__"""
    if isinstance(exc, NimbusBuildError):
        return exc
    err = ExecutionError(f"步骤 {step.name} 异常: {exc}")
    err.__cause__ = exc
    return err
