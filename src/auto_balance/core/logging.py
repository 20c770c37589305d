"""
日志等级、格式化工具与任务级日志收集器。

LogRecorder 以容量为 1 的公平许可排队：同一时刻只有一个会话在收集日志，
start_session 与 end_session 允许在不同线程调用。
"""

from __future__ import annotations

import collections
import threading
import time
import traceback
from typing import Callable, Deque, Dict, List, Optional

from .common import now_label

LOG_LEVELS: Dict[str, int] = {"debug": 10, "info": 20, "warn": 30, "error": 40}

_LEVEL_LETTERS: Dict[str, str] = {"debug": "D", "info": "I", "warn": "W", "error": "E"}


def level_name(level: str) -> str:
    name = str(level or "").lower()
    if name == "warning":
        return "warn"
    return name if name in LOG_LEVELS else "info"


def ensure_level_tag(msg: str, level: str) -> str:
    if any(f"【{tag}】" in msg for tag in ("DEBUG", "INFO", "WARN", "ERROR")):
        return msg
    try:
        idx = msg.find("】")
        if idx >= 0:
            return msg[: idx + 1] + f"【{level.upper()}】" + msg[idx + 1 :]
    except Exception:
        pass
    return f"【{now_label()}】【{level.upper()}】" + msg


class _FairPermit:
    """容量为 1 的 FIFO 许可；不记录持有线程，可由任意线程释放。"""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._queue: Deque[object] = collections.deque()
        self._held = False

    def acquire(self) -> None:
        ticket = object()
        with self._cond:
            self._queue.append(ticket)
            while self._held or self._queue[0] is not ticket:
                self._cond.wait()
            self._queue.popleft()
            self._held = True

    def release(self) -> None:
        with self._cond:
            if not self._held:
                raise RuntimeError("许可未被持有")
            self._held = False
            self._cond.notify_all()


class LogRecorder:
    """任务级日志收集器。

    - start_session 获取许可（被占用时阻塞排队，先到先得）并清空缓冲区；
    - append 仅在会话活跃时写入，多线程并发写入由锁保护；
    - end_session 返回累计文本并释放许可，唤醒下一个排队的会话。
    """

    def __init__(
        self,
        *,
        sink: Optional[Callable[[str], None]] = None,
        level: str = "info",
    ) -> None:
        self.sink = sink
        self.level = level_name(level)
        self._permit = _FairPermit()
        self._lock = threading.Lock()
        self._active = False
        self._work_id: Optional[str] = None
        self._buffer: List[str] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def work_id(self) -> Optional[str]:
        return self._work_id

    def start_session(self, work_id: str) -> None:
        self._permit.acquire()
        try:
            with self._lock:
                self._active = True
                self._work_id = str(work_id)
                self._buffer = [f"[LogSession started] workId={work_id}\n"]
        except BaseException:
            self._permit.release()
            raise

    def end_session(self) -> str:
        with self._lock:
            if not self._active:
                return ""
            self._buffer.append(f"[LogSession ended] workId={self._work_id}\n")
            result = "".join(self._buffer)
            self._active = False
            self._work_id = None
            self._buffer = []
        self._permit.release()
        return result

    def append(
        self,
        level: str,
        tag: str,
        msg: str,
        exc: Optional[BaseException] = None,
    ) -> None:
        if not self._active:
            return
        lv = level_name(level)
        line = f"{self._timestamp()} {_LEVEL_LETTERS[lv]}/{tag}: {msg}\n"
        trace = ""
        if exc is not None:
            trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        with self._lock:
            if not self._active:
                return
            self._buffer.append(line)
            if trace:
                self._buffer.append(trace if trace.endswith("\n") else trace + "\n")

    # --- 与 android.util.Log 对齐的便捷方法 ---
    def d(self, tag: str, msg: str) -> None:
        self._emit("debug", tag, msg)

    def i(self, tag: str, msg: str) -> None:
        self._emit("info", tag, msg)

    def w(self, tag: str, msg: str) -> None:
        self._emit("warn", tag, msg)

    def e(self, tag: str, msg: str, exc: Optional[BaseException] = None) -> None:
        self._emit("error", tag, msg, exc)

    def _emit(
        self,
        level: str,
        tag: str,
        msg: str,
        exc: Optional[BaseException] = None,
    ) -> None:
        self.append(level, tag, msg, exc)
        if self.sink is None:
            return
        if LOG_LEVELS[level] < LOG_LEVELS.get(self.level, 20):
            return
        text = f"【{now_label()}】【{tag}】：{msg}"
        if exc is not None:
            text += f"（{type(exc).__name__}: {exc}）"
        try:
            self.sink(ensure_level_tag(text, level))
        except Exception:
            pass

    @staticmethod
    def _timestamp() -> str:
        now = time.time()
        ms = int((now - int(now)) * 1000)
        return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now)) + f".{ms:03d}"


# 进程级单例：并发自动化不受支持，全局仅一个日志会话
RECORDER = LogRecorder(sink=print)


__all__ = [
    "LOG_LEVELS",
    "LogRecorder",
    "RECORDER",
    "ensure_level_tag",
    "level_name",
]
