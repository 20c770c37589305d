"""
截图文字/金额区域粗分割。

流程：
1) 最近邻缩放到指定宽度（默认 320），同时灰度化
2) 大津法 (Otsu) 全局阈值二值化，白像素过半则整体翻转（保证黑底白字）
3) 12x3 矩形膨胀，横向连接同一行文字
4) 4-连通域提取，按外接框面积过滤后输出归一化矩形
"""

from __future__ import annotations

import math
import os
import random
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from auto_balance.core.models import NormRect, Region

ImageLike = Union["Image.Image", np.ndarray, str, Path]

STANDARD_WIDTH = 320
# 膨胀核：以前景像素为中心左右各 6 列、上下各 1 行
DILATE_HALF_W = 6
DILATE_HALF_H = 1
MIN_AREA = 625
MAX_AREA = 10000


def to_rgb_array(image: ImageLike) -> np.ndarray:
    """统一转为 uint8 数组：RGB 为 HxWx3，灰度图保持 HxW。"""
    if isinstance(image, (str, Path)):
        if not os.path.exists(image):
            raise FileNotFoundError(f"图片文件不存在: {image}")
        with Image.open(image) as img:
            return np.asarray(img.convert("RGB"), dtype=np.uint8)
    if isinstance(image, Image.Image):
        if image.width == 0 or image.height == 0:
            return np.zeros((image.height, image.width, 3), dtype=np.uint8)
        return np.asarray(image.convert("RGB"), dtype=np.uint8)
    if isinstance(image, np.ndarray):
        arr = image
        if arr.ndim == 3 and arr.shape[2] == 1:
            arr = arr[:, :, 0]
        elif arr.ndim == 3 and arr.shape[2] == 4:
            arr = arr[:, :, :3]
        if arr.ndim not in (2, 3):
            raise TypeError(f"不支持的数组维度: {arr.ndim}")
        if arr.ndim == 3 and arr.shape[2] != 3:
            raise TypeError(f"不支持的通道数: {arr.shape[2]}")
        return arr.astype(np.uint8, copy=False)
    raise TypeError("不支持的图片类型：请传入路径/PIL.Image/numpy.ndarray")


def _downscale_gray(arr: np.ndarray, target_width: int) -> np.ndarray:
    orig_h, orig_w = arr.shape[:2]
    scale = float(target_width) / float(orig_w)
    new_w = int(target_width)
    new_h = max(1, int(math.floor(orig_h * scale + 0.5)))
    rows = np.minimum((np.arange(new_h) / scale).astype(np.int64), orig_h - 1)
    cols = np.minimum((np.arange(new_w) / scale).astype(np.int64), orig_w - 1)
    sampled = arr[rows][:, cols]
    if sampled.ndim == 2:
        return sampled.astype(np.int64)
    rgb = sampled.astype(np.float64)
    lum = 0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]
    return np.clip(lum.astype(np.int64), 0, 255)


def otsu_threshold(gray: np.ndarray) -> int:
    """类间方差最大的阈值；并列时取最小的 t。"""
    hist = np.bincount(gray.ravel(), minlength=256)[:256].astype(np.float64)
    total = float(gray.size)
    levels = np.arange(256, dtype=np.float64)
    w_b = np.cumsum(hist)
    sum_b = np.cumsum(hist * levels)
    sum_all = sum_b[-1]
    w_f = total - w_b
    valid = (w_b > 0) & (w_f > 0)
    if not valid.any():
        return 0
    with np.errstate(divide="ignore", invalid="ignore"):
        m_b = sum_b / w_b
        m_f = (sum_all - sum_b) / w_f
        variance = w_b * w_f * (m_b - m_f) ** 2
    variance = np.where(valid, variance, -1.0)
    return int(np.argmax(variance))


def binarize(gray: np.ndarray) -> np.ndarray:
    """Otsu 二值化（0/255），白像素过半时翻转。"""
    t = otsu_threshold(gray)
    binary = np.where(gray > t, 255, 0).astype(np.uint8)
    if int(np.count_nonzero(binary)) > gray.size // 2:
        binary = 255 - binary
    return binary


def dilate(binary: np.ndarray) -> np.ndarray:
    kernel = np.ones((2 * DILATE_HALF_H + 1, 2 * DILATE_HALF_W + 1), dtype=np.uint8)
    return cv2.dilate(binary, kernel)


def segment(
    image: ImageLike,
    target_width: int = STANDARD_WIDTH,
    *,
    save_dir: Optional[Union[str, Path]] = None,
    on_log: Optional[Callable[[str], None]] = None,
) -> Tuple[List[NormRect], Optional[np.ndarray]]:
    """从截图获取归一化候选区域与膨胀后的二值图（0/255）。

    返回的矩形以缩放后的工作分辨率归一化，调用方需自行映射回目标坐标系。
    空图返回 ([], None)。
    """
    arr = to_rgb_array(image)
    if arr.ndim < 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        return [], None

    gray = _downscale_gray(arr, target_width)
    new_h, new_w = gray.shape
    binary = binarize(gray)
    dilated = dilate(binary)

    count, _labels, stats, _ = cv2.connectedComponentsWithStats(dilated, connectivity=4)
    kept: List[Tuple[int, int, int, int]] = []
    for idx in range(1, count):
        left = int(stats[idx, cv2.CC_STAT_LEFT])
        top = int(stats[idx, cv2.CC_STAT_TOP])
        cw = int(stats[idx, cv2.CC_STAT_WIDTH])
        ch = int(stats[idx, cv2.CC_STAT_HEIGHT])
        area = cw * ch
        if area < MIN_AREA or area > MAX_AREA:
            continue
        kept.append((left, top, cw, ch))
    kept.sort(key=lambda b: (b[1], b[0]))

    regions = [
        NormRect(
            x=left / float(new_w),
            y=top / float(new_h),
            w=cw / float(new_w),
            h=ch / float(new_h),
        )
        for left, top, cw, ch in kept
    ]

    if save_dir is not None:
        _save_intermediates(save_dir, gray, binary, dilated, kept, on_log=on_log)
    return regions, dilated


def _save_intermediates(
    save_dir: Union[str, Path],
    gray: np.ndarray,
    binary: np.ndarray,
    dilated: np.ndarray,
    kept: Sequence[Tuple[int, int, int, int]],
    *,
    on_log: Optional[Callable[[str], None]] = None,
) -> None:
    marked = dilated.copy()
    for left, top, cw, ch in kept:
        marked[top : top + ch - 1, left : left + cw - 1] = 125
    stamp = time.strftime("%Y%m%d-%H%M%S")
    try:
        out = Path(save_dir)
        out.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(out / f"seg_{stamp}_gray.png"), gray.astype(np.uint8))
        cv2.imwrite(str(out / f"seg_{stamp}_binary.png"), binary)
        cv2.imwrite(str(out / f"seg_{stamp}_dilated.png"), marked)
    except Exception as exc:
        if on_log:
            on_log(f"保存分割中间结果失败: {exc}")


# ================= 选取策略 =================
# 每个策略返回一个归一化矩形，其中心即点击目标


def strategy_last_two_center(regions: Sequence[NormRect]) -> Optional[NormRect]:
    """取 x 最靠右的两个区域（图标 + 文字），目标为上方区域的水平中心、两者合并的垂直中心。"""
    if len(regions) < 2:
        return None
    ordered = sorted(regions, key=lambda r: r.x)
    upper, lower = ordered[-2], ordered[-1]
    if upper.y > lower.y:
        upper, lower = lower, upper
    return NormRect(x=upper.x, y=upper.y, w=upper.w, h=lower.y + lower.h - upper.y)


def strategy_first_col_right(regions: Sequence[NormRect]) -> Optional[NormRect]:
    """取第一列（x 差异 < 0.005）中最靠上的区域，目标为整行水平中点。"""
    if not regions:
        return None
    ordered = sorted(regions, key=lambda r: r.x)
    base_x = ordered[0].x
    column = [r for r in ordered if abs(r.x - base_x) < 0.005]
    if not column:
        return None
    top = min(column, key=lambda r: r.y)
    return NormRect(x=0.0, y=top.y, w=1.0, h=top.h)


def strategy_top_most(regions: Sequence[NormRect]) -> Optional[NormRect]:
    if not regions:
        return None
    return min(regions, key=lambda r: r.y)


# ================= 坐标工具 =================


def map_to_global(norm_pt: Tuple[float, float], crop: Region) -> Tuple[int, int]:
    """归一化点 -> 原图绝对坐标。crop 为 (left, top, width, height)。"""
    nx, ny = norm_pt
    left, top, width, height = crop
    return int(left + int(nx * width)), int(top + int(ny * height))


def jitter_point(
    point: Tuple[int, int],
    jitter: Tuple[int, int] = (0, 0),
    rng: Optional[random.Random] = None,
) -> Tuple[float, float]:
    cx, cy = point
    jx, jy = jitter
    gen = rng or random
    dx = 0.0 if jx == 0 else gen.uniform(-jx, jx)
    dy = 0.0 if jy == 0 else gen.uniform(-jy, jy)
    return float(cx) + dx, float(cy) + dy


def crop_image(image: "Image.Image", region: Region) -> "Image.Image":
    left, top, width, height = region
    return image.crop((int(left), int(top), int(left + width), int(top + height)))


__all__ = [
    "MAX_AREA",
    "MIN_AREA",
    "STANDARD_WIDTH",
    "binarize",
    "crop_image",
    "dilate",
    "jitter_point",
    "map_to_global",
    "otsu_threshold",
    "segment",
    "strategy_first_col_right",
    "strategy_last_two_center",
    "strategy_top_most",
    "to_rgb_array",
]
