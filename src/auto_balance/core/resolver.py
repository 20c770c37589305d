"""
按标签解析点击坐标：优先缓存，未命中时调用回退函数并写回缓存。
"""

from __future__ import annotations

from typing import Callable, Optional, Tuple

from auto_balance.core.models import NormRect, Region
from auto_balance.services.segmentation import map_to_global
from auto_balance.services.store import CoordinateCache


class CoordinateResolver:
    def __init__(
        self,
        cache: CoordinateCache,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.cache = cache
        self.on_log = on_log

    def _log(self, msg: str) -> None:
        if self.on_log is not None:
            try:
                self.on_log(msg)
            except Exception:
                pass

    def resolve(
        self,
        label: str,
        fallback: Callable[[], Optional[NormRect]],
        source_region: Region,
    ) -> Optional[Tuple[int, int]]:
        """返回 label 对应的屏幕坐标；回退函数返回 None 时不写缓存。"""
        cached = self.cache.get(label)
        if cached is not None:
            self._log(f"[{label}] 命中缓存坐标 {cached}")
            return cached
        rect = fallback()
        if rect is None:
            self._log(f"[{label}] 未找到可用区域")
            return None
        point = map_to_global(rect.center, source_region)
        self.cache.put(label, point)
        self._log(f"[{label}] 解析坐标 {point} 并写入缓存")
        return point


__all__ = ["CoordinateResolver"]
