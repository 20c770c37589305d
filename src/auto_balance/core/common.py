"""
核心通用工具。
"""

from __future__ import annotations

import datetime as _dt
import time
from typing import Optional


def now_label() -> str:
    return time.strftime("%H:%M:%S")


def today_str(now: Optional[_dt.date] = None) -> str:
    """返回 yyyy-MM-dd 格式的日期字符串。"""
    day = now or _dt.date.today()
    return day.strftime("%Y-%m-%d")


def start_of_today(now: Optional[_dt.datetime] = None) -> _dt.datetime:
    base = now or _dt.datetime.now()
    return base.replace(hour=0, minute=0, second=0, microsecond=0)


def is_before_today(ts: float, now: Optional[_dt.datetime] = None) -> bool:
    """时间戳（秒）是否早于今日零点；<=0 视为从未更新。"""
    if not ts or ts <= 0:
        return True
    return _dt.datetime.fromtimestamp(float(ts)) < start_of_today(now)


def safe_int(value: object, default: int = -1) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return default


def safe_sleep(seconds: float) -> None:
    try:
        time.sleep(max(0.0, float(seconds)))
    except Exception:
        pass


__all__ = [
    "is_before_today",
    "now_label",
    "safe_int",
    "safe_sleep",
    "start_of_today",
    "today_str",
]
