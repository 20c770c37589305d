"""
本地键值存储（JSON 文件），以及基于它的坐标缓存与"今日已更新"标记。
"""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from auto_balance.core.common import is_before_today, safe_int
from auto_balance.core.models import ChannelType

LAST_UPDATE_KEY = "last_update_time"
_COORDS_KEY = "coords"
_RECTS_KEY = "rects"
_UPDATED_PREFIX = "updated:"

# 旧版平铺键前缀 -> 当前坐标标签
LEGACY_LABELS: Dict[str, str] = {
    "wx_我": "wechat_me_tab",
    "wx_服务": "wechat_service_tab",
    "wx_钱包": "wechat_wallet",
}


class KeyValueStore:
    """线程安全的 JSON 键值存储；path 为 None 时仅驻留内存。"""

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
            if isinstance(raw, dict):
                self._data = raw
        except Exception:
            self._data = {}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(self._data, fh, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def update(self, values: Dict[str, Any], *, remove: Iterable[str] = ()) -> None:
        with self._lock:
            for key in remove:
                self._data.pop(key, None)
            self._data.update(values)
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                self._data.pop(key, None)
                self._flush()

    def keys(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._data.keys())


class CoordinateCache:
    """标签 -> 屏幕绝对坐标 / 矩形。

    创建时会把旧格式的平铺键 `<label>_x` / `<label>_y` 合并进坐标表。
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self.migrate_legacy()

    def migrate_legacy(self) -> int:
        keys = set(self.store.keys())
        coords = dict(self.store.get(_COORDS_KEY, {}) or {})
        moved: Dict[str, Tuple[int, int]] = {}
        stale: List[str] = []
        for key in keys:
            if not key.endswith("_x"):
                continue
            label = key[:-2]
            y_key = f"{label}_y"
            if not label or y_key not in keys:
                continue
            stale.extend((key, y_key))
            x = safe_int(self.store.get(key))
            y = safe_int(self.store.get(y_key))
            # 旧数据用 (0, 0) 表示未找到
            if x <= 0 or y <= 0:
                continue
            moved[LEGACY_LABELS.get(label, label)] = (x, y)
        if not stale:
            return 0
        for label, (x, y) in moved.items():
            coords.setdefault(label, [x, y])
        self.store.update({_COORDS_KEY: coords}, remove=stale)
        return len(moved)

    def get(self, label: str) -> Optional[Tuple[int, int]]:
        raw = (self.store.get(_COORDS_KEY, {}) or {}).get(label)
        if not isinstance(raw, (list, tuple)) or len(raw) != 2:
            return None
        return int(raw[0]), int(raw[1])

    def put(self, label: str, point: Tuple[int, int]) -> None:
        coords = dict(self.store.get(_COORDS_KEY, {}) or {})
        coords[label] = [int(point[0]), int(point[1])]
        self.store.put(_COORDS_KEY, coords)

    def get_rect(self, label: str) -> Optional[Tuple[int, int, int, int]]:
        raw = (self.store.get(_RECTS_KEY, {}) or {}).get(label)
        if not isinstance(raw, (list, tuple)) or len(raw) != 4:
            return None
        left, top, right, bottom = (int(v) for v in raw)
        return left, top, right, bottom

    def put_rect(self, label: str, rect: Tuple[int, int, int, int]) -> None:
        rects = dict(self.store.get(_RECTS_KEY, {}) or {})
        rects[label] = [int(v) for v in rect]
        self.store.put(_RECTS_KEY, rects)

    def invalidate(self, label: str) -> None:
        coords = dict(self.store.get(_COORDS_KEY, {}) or {})
        rects = dict(self.store.get(_RECTS_KEY, {}) or {})
        coords.pop(label, None)
        rects.pop(label, None)
        self.store.update({_COORDS_KEY: coords, _RECTS_KEY: rects})


class UpdateTracker:
    """记录各渠道最近一次成功读取余额的时间戳（秒）。"""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @staticmethod
    def _key(channel: ChannelType) -> str:
        return _UPDATED_PREFIX + ChannelType(channel).value

    def last_updated(self, channel: ChannelType) -> float:
        try:
            return float(self.store.get(self._key(channel), 0) or 0)
        except (TypeError, ValueError):
            return 0.0

    def should_update(self, channel: ChannelType, now=None) -> bool:
        return is_before_today(self.last_updated(channel), now)

    def mark_updated(self, channel: ChannelType, ts: Optional[float] = None) -> None:
        self.store.put(self._key(channel), float(time.time() if ts is None else ts))

    def reset(self, channel: ChannelType) -> None:
        self.store.remove(self._key(channel))

    def reset_all(self) -> None:
        for channel in ChannelType:
            self.reset(channel)

    def last_chain_update(self) -> float:
        try:
            return float(self.store.get(LAST_UPDATE_KEY, 0) or 0)
        except (TypeError, ValueError):
            return 0.0

    def mark_chain_done(self, ts: Optional[float] = None) -> None:
        self.store.put(LAST_UPDATE_KEY, float(time.time() if ts is None else ts))


__all__ = ["CoordinateCache", "KeyValueStore", "LAST_UPDATE_KEY", "LEGACY_LABELS", "UpdateTracker"]
