"""
流程上下文：一次链路执行中所有渠道共享的句柄。
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from auto_balance.config import ConfigPaths
from auto_balance.core.logging import RECORDER, LogRecorder
from auto_balance.core.models import ChannelType
from auto_balance.core.resolver import CoordinateResolver
from auto_balance.services.device import Device
from auto_balance.services.history import BalanceRepository
from auto_balance.services.ocr import OcrClient
from auto_balance.services.store import CoordinateCache, KeyValueStore, UpdateTracker


class FlowContext:
    """同一个实例按引用传给链路上的每个渠道流程。

    完成句柄由链路入口显式绑定（bind_completion），之后所有步骤看到的是同一个。
    """

    def __init__(
        self,
        cfg: Dict[str, Any],
        device: Device,
        ocr: Optional[OcrClient],
        store: KeyValueStore,
        repository: BalanceRepository,
        recorder: Optional[LogRecorder] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.cfg = cfg
        self.device = device
        self.ocr = ocr
        self.store = store
        self.repository = repository
        self.recorder = recorder or RECORDER
        self.stop_event = stop_event or threading.Event()
        self.coords = CoordinateCache(store)
        self.tracker = UpdateTracker(store)
        self.resolver = CoordinateResolver(self.coords, on_log=lambda m: self.recorder.d("坐标", m))
        self.completion: Optional[Future] = None
        self._screen_size: Optional[Tuple[int, int]] = None

    def bind_completion(self, future: Optional[Future]) -> None:
        self.completion = future

    def sleep(self, seconds: float) -> None:
        """可被停止信号唤醒的等待。"""
        if seconds > 0:
            self.stop_event.wait(float(seconds))

    # ---------- 配置读取 ----------
    def automation(self, key: str, default: Any) -> Any:
        value = (self.cfg.get("automation", {}) or {}).get(key, default)
        return default if value is None else value

    def channel_cfg(self, channel: ChannelType) -> Dict[str, Any]:
        return dict((self.cfg.get("channels", {}) or {}).get(ChannelType(channel).value, {}) or {})

    def debug_dir(self) -> Optional[Path]:
        if not bool((self.cfg.get("debug", {}) or {}).get("save_intermediates", False)):
            return None
        return ConfigPaths.from_config(self.cfg).debug_dir

    def screen_size(self) -> Optional[Tuple[int, int]]:
        """首次调用时截图获取屏幕尺寸，之后复用。"""
        if self._screen_size is None:
            shot = self.device.take_screenshot()
            if shot is None:
                return None
            self._screen_size = (int(shot.width), int(shot.height))
        return self._screen_size


__all__ = ["FlowContext"]
