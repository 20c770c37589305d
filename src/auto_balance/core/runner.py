"""每日余额任务：包裹一次完整链路执行并记录执行日志。"""
from __future__ import annotations

import threading
from concurrent.futures import CancelledError, Future, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from auto_balance.config import ConfigPaths
from auto_balance.core.common import is_before_today
from auto_balance.core.context import FlowContext
from auto_balance.core.engine import StepEngine
from auto_balance.core.exceptions import ChainAbortedError
from auto_balance.core.logging import RECORDER, LogRecorder
from auto_balance.services.device import AdbDevice, Device, UiThreadDevice
from auto_balance.services.history import (
    STATUS_FAILURE,
    STATUS_STARTING,
    STATUS_SUCCESS,
    BalanceRepository,
    new_task_id,
    resolve_paths as _resolve_history_paths,
)
from auto_balance.services.ocr import OcrClient
from auto_balance.services.store import KeyValueStore, UpdateTracker

TAG = "余额任务"
TASK_NAME = "GetAppBalance"


@dataclass
class JobResult:
    task_id: str
    status: str
    summary: str = ""
    logs: str = ""
    skipped: bool = False
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


def build_device(cfg: Dict[str, Any]) -> Device:
    """按配置创建设备后端，并包上单一 UI 线程派发。"""
    backend = str((cfg.get("device", {}) or {}).get("backend", "adb") or "adb").lower()
    if backend == "mirror":
        from auto_balance.services.screen_ops import MirrorDevice

        inner: Device = MirrorDevice(cfg)
    elif backend == "adb":
        inner = AdbDevice(cfg)
    else:
        raise ValueError(f"未知的设备后端: {backend}")
    return UiThreadDevice(inner)


class BalanceJob:
    """一次"获取各渠道余额"的任务。

    - 开启日志会话并写入 STARTING；
    - 今日已整体更新过则直接成功返回（force=True 时忽略并重置各渠道标记）；
    - 启动链路并在超时时间内等待完成句柄；
    - 以聚合日志写入 SUCCESS / FAILURE。
    """

    def __init__(
        self,
        cfg: Dict[str, Any],
        *,
        device: Optional[Device] = None,
        ocr: Optional[OcrClient] = None,
        store: Optional[KeyValueStore] = None,
        repository: Optional[BalanceRepository] = None,
        recorder: Optional[LogRecorder] = None,
        engine: Optional[StepEngine] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.cfg = cfg
        self.paths = ConfigPaths.from_config(cfg)
        self.device = device
        self.ocr = ocr if ocr is not None else OcrClient(cfg)
        self.store = store if store is not None else KeyValueStore(self.paths.store_file)
        self.repository = repository if repository is not None else BalanceRepository(_resolve_history_paths(self.paths.output_dir))
        self.recorder = recorder or RECORDER
        # 仅在 run 期间挂到 recorder 上，结束后恢复原 sink
        self.on_log = on_log
        self.engine = engine or StepEngine(
            recorder=self.recorder,
            max_repeats=int((cfg.get("automation", {}) or {}).get("max_step_repeats", 20) or 20),
        )
        self.stop_event = threading.Event()

    def stop(self) -> None:
        self.stop_event.set()

    def run(self, *, force: bool = False, timeout: Optional[float] = None) -> JobResult:
        task_id = new_task_id()
        if timeout is None:
            timeout = float((self.cfg.get("automation", {}) or {}).get("job_timeout_sec", 600) or 600)

        self.recorder.start_session(task_id)
        prev_sink = self.recorder.sink
        if self.on_log is not None:
            self.recorder.sink = self.on_log
        status = STATUS_FAILURE
        skipped = False
        error: Optional[BaseException] = None
        try:
            self.repository.append_task_log(task_id, TASK_NAME, STATUS_STARTING)
            summary, skipped = self._execute(force=force, timeout=timeout)
            status = STATUS_SUCCESS
        except Exception as exc:
            self.recorder.e(TAG, "余额任务失败", exc)
            summary, error = str(exc), exc
        finally:
            # 无论哪条路径都要结束会话，否则许可不释放，后续任务会一直排队
            logs = self.recorder.end_session()
            self.recorder.sink = prev_sink
        self.repository.append_task_log(task_id, TASK_NAME, status, logs=logs)
        return JobResult(task_id, status, summary, logs, skipped=skipped, error=error)

    def _execute(self, *, force: bool, timeout: float) -> Tuple[str, bool]:
        # 延迟导入，避免 core <-> flows 循环依赖
        from auto_balance.flows.chain import run_chain

        tracker = UpdateTracker(self.store)
        if force:
            self.recorder.i(TAG, "强制执行：重置各渠道今日标记")
            tracker.reset_all()
        elif not is_before_today(tracker.last_chain_update()):
            self.recorder.i(TAG, "今日余额已更新，跳过")
            return "今日已更新", True

        owns_device = self.device is None
        device = self.device if self.device is not None else build_device(self.cfg)
        try:
            ctx = FlowContext(
                self.cfg,
                device,
                self.ocr,
                self.store,
                self.repository,
                recorder=self.recorder,
                stop_event=self.stop_event,
            )
            completion: Future = Future()
            self.recorder.i(TAG, "开始获取余额")
            run_chain(self.engine, ctx, completion)
            try:
                summary = completion.result(timeout=timeout)
            except FutureTimeout as exc:
                self.stop_event.set()
                completion.cancel()
                raise ChainAbortedError(f"等待余额结果超时（{timeout:.0f}s）") from exc
            except CancelledError as exc:
                raise ChainAbortedError("余额任务被取消") from exc
        finally:
            if owns_device:
                device.close()
        self.recorder.i(TAG, f"余额任务完成：{summary}")
        return str(summary), False


__all__ = ["BalanceJob", "JobResult", "build_device"]
