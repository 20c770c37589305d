"""
点击后像素变化校验。
"""

from __future__ import annotations

import random
from typing import Callable, Optional, Tuple

import numpy as np

from auto_balance.core.common import safe_sleep
from auto_balance.services.device import Device
from auto_balance.services.segmentation import jitter_point


def _window(center: Tuple[int, int], half_size: Tuple[int, int], size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    cx, cy = int(center[0]), int(center[1])
    hw, hh = int(half_size[0]), int(half_size[1])
    width, height = size
    left = max(0, min(cx - hw, width))
    top = max(0, min(cy - hh, height))
    right = max(left, min(cx + hw, width))
    bottom = max(top, min(cy + hh, height))
    return left, top, right, bottom


def _grab(device: Device, box: Optional[Tuple[int, int, int, int]], half_size, center):
    shot = device.take_screenshot()
    if shot is None:
        return None, box
    if box is None:
        box = _window(center, half_size, shot.size)
    return np.asarray(shot.crop(box).convert("RGB")), box


def click_and_verify(
    device: Device,
    center: Tuple[int, int],
    *,
    jitter: Tuple[int, int] = (0, 0),
    max_attempts: int = 3,
    settle_delay: float = 0.8,
    half_size: Tuple[int, int] = (40, 40),
    sleep: Callable[[float], None] = safe_sleep,
    rng: Optional[random.Random] = None,
) -> bool:
    """点击 center 附近并确认其周边像素发生变化。

    无法截图时直接返回 False；同一个窗口在每次尝试前后比较。
    """
    before, box = _grab(device, None, half_size, center)
    if before is None:
        return False
    for _ in range(max(1, int(max_attempts))):
        x, y = jitter_point(center, jitter, rng)
        device.gesture_click(x, y)
        sleep(settle_delay)
        after, _ = _grab(device, box, half_size, center)
        if after is None:
            return False
        if after.shape != before.shape or not np.array_equal(before, after):
            return True
    return False


__all__ = ["click_and_verify"]
