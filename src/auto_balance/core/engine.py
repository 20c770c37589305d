"""
步骤引擎：按步骤 id 查表执行，每个步骤返回下一步的描述。

步骤函数无参数，返回以下结果之一：
- Success(step_id, delay)：延时后进入 step_id；
- Retry(delay, reason)：延时后重跑当前步骤，受 max_repeats 约束；
- SkipChannel(step_id, reason)：跳过当前渠道，立即进入 step_id；
- Stop(reason)：正常结束；
- FatalAbort(error)：终止整条链路，并把异常写入完成句柄。
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Union

from auto_balance.core.exceptions import ChainAbortedError
from auto_balance.core.logging import RECORDER, LogRecorder

TAG = "步骤引擎"


@dataclass(frozen=True)
class Success:
    step_id: Hashable
    delay: float = 0.0


@dataclass(frozen=True)
class Retry:
    delay: float = 1.0
    reason: str = ""


@dataclass(frozen=True)
class SkipChannel:
    step_id: Hashable
    reason: str = ""


@dataclass(frozen=True)
class Stop:
    reason: str = ""


@dataclass(frozen=True)
class FatalAbort:
    error: BaseException


StepOutcome = Union[Success, Retry, SkipChannel, Stop, FatalAbort]
StepFn = Callable[[], StepOutcome]


class StepCollector:
    """步骤注册表；同一 id 只能注册一次。"""

    def __init__(self) -> None:
        self._steps: Dict[Hashable, StepFn] = {}

    def next(self, step_id: Hashable, fn: StepFn) -> "StepCollector":
        if step_id in self._steps:
            raise ValueError(f"步骤重复注册: {step_id}")
        self._steps[step_id] = fn
        return self

    def get(self, step_id: Hashable) -> Optional[StepFn]:
        return self._steps.get(step_id)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __len__(self) -> int:
        return len(self._steps)


def _step_name(step_id: Any) -> str:
    return str(getattr(step_id, "name", step_id))


class StepEngine:
    """在后台线程中执行一条步骤链（调用方即发即忘，通过完成句柄观察结果）。"""

    def __init__(
        self,
        *,
        recorder: Optional[LogRecorder] = None,
        max_repeats: int = 20,
    ) -> None:
        self.recorder = recorder or RECORDER
        self.max_repeats = max(1, int(max_repeats))
        self.history: List[Hashable] = []

    def execute(
        self,
        flow_impl: Callable[[StepCollector], None],
        entry_step: Hashable,
        completion: Optional[Future],
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> threading.Thread:
        collector = StepCollector()
        flow_impl(collector)
        self.history = []
        th = threading.Thread(
            target=self._run,
            args=(collector, entry_step, completion, stop_event),
            name="balance-steps",
            daemon=True,
        )
        th.start()
        return th

    # ------------------------------------------------------------------
    def _wait(self, seconds: float, stop_event: Optional[threading.Event]) -> None:
        if seconds <= 0:
            return
        if stop_event is not None:
            stop_event.wait(seconds)
        else:
            time.sleep(seconds)

    def _fail(self, completion: Optional[Future], exc: BaseException) -> None:
        if completion is None or completion.done():
            return
        try:
            completion.set_exception(exc)
        except InvalidStateError:
            pass

    def _run(
        self,
        collector: StepCollector,
        entry_step: Hashable,
        completion: Optional[Future],
        stop_event: Optional[threading.Event],
    ) -> None:
        current = entry_step
        repeats = 0
        while True:
            if completion is not None and completion.cancelled():
                self.recorder.w(TAG, f"完成句柄已取消，停止于 {_step_name(current)} 之前")
                return
            if stop_event is not None and stop_event.is_set():
                self.recorder.w(TAG, f"收到停止信号，停止于 {_step_name(current)} 之前")
                self._fail(completion, ChainAbortedError("链路被停止"))
                return

            fn = collector.get(current)
            if fn is None:
                exc = ChainAbortedError(f"未注册的步骤: {_step_name(current)}")
                self.recorder.e(TAG, str(exc))
                self._fail(completion, exc)
                return

            self.history.append(current)
            self.recorder.d(TAG, f"执行步骤 {_step_name(current)}")
            try:
                outcome = fn()
            except Exception as exc:
                outcome = FatalAbort(exc)

            if isinstance(outcome, Success):
                current = outcome.step_id
                repeats = 0
                self._wait(outcome.delay, stop_event)
            elif isinstance(outcome, SkipChannel):
                if outcome.reason:
                    self.recorder.i(TAG, f"跳过渠道：{outcome.reason}")
                current = outcome.step_id
                repeats = 0
            elif isinstance(outcome, Retry):
                repeats += 1
                if repeats > self.max_repeats:
                    exc = ChainAbortedError(
                        f"步骤 {_step_name(current)} 重试超过 {self.max_repeats} 次: {outcome.reason}"
                    )
                    self.recorder.e(TAG, str(exc))
                    self._fail(completion, exc)
                    return
                self.recorder.w(TAG, f"重试步骤 {_step_name(current)}（{repeats}）：{outcome.reason}")
                self._wait(outcome.delay, stop_event)
            elif isinstance(outcome, Stop):
                self.recorder.d(TAG, f"链路结束 {outcome.reason}".rstrip())
                return
            elif isinstance(outcome, FatalAbort):
                self.recorder.e(TAG, f"步骤 {_step_name(current)} 致命错误", outcome.error)
                self._fail(completion, outcome.error)
                return
            else:
                exc = ChainAbortedError(f"步骤 {_step_name(current)} 返回了未知结果: {outcome!r}")
                self.recorder.e(TAG, str(exc))
                self._fail(completion, exc)
                return


__all__ = [
    "FatalAbort",
    "Retry",
    "SkipChannel",
    "StepCollector",
    "StepEngine",
    "StepOutcome",
    "Stop",
    "Success",
]
