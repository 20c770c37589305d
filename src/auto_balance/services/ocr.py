"""
Umi-OCR HTTP 客户端。

只负责把截图送去识别并取回文本框；文本匹配与金额提取在调用方完成。
接口：POST {base_url}/api/ocr，code=100 为有结果，101 为图中无文字。
"""

from __future__ import annotations

import base64
import io
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import requests
from PIL import Image

from auto_balance.core.exceptions import FatalOcrError
from auto_balance.services.segmentation import ImageLike, to_rgb_array

DEFAULT_BASE_URL = "http://127.0.0.1:1224"
_CODE_OK = 100
_CODE_NO_TEXT = 101

_AMOUNT_RE = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)(?![\d.])")


@dataclass
class OcrBox:
    """识别出的一段文本；bbox 为 (x, y, w, h) 像素。"""

    text: str
    bbox: Tuple[int, int, int, int]
    score: Optional[float] = None

    @property
    def center(self) -> Tuple[int, int]:
        x, y, w, h = self.bbox
        return int(x + w / 2), int(y + h / 2)


def _encode_png(image: ImageLike) -> str:
    if isinstance(image, Image.Image) and image.mode in ("RGB", "L"):
        pil = image
    else:
        pil = Image.fromarray(to_rgb_array(image))
    buf = io.BytesIO()
    pil.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _box_to_rect(box: Any) -> Optional[Tuple[int, int, int, int]]:
    """四点坐标 -> 外接矩形；格式不对返回 None。"""
    if not isinstance(box, (list, tuple)) or not box:
        return None
    try:
        pts = np.asarray(box, dtype=float).reshape(-1, 2)
    except (TypeError, ValueError):
        return None
    x1, y1 = pts.min(axis=0)
    x2, y2 = pts.max(axis=0)
    return int(x1), int(y1), int(max(1.0, x2 - x1)), int(max(1.0, y2 - y1))


def _iter_boxes(blocks: Any, offset: Tuple[int, int]) -> Iterator[OcrBox]:
    if not isinstance(blocks, list):
        return
    ox, oy = int(offset[0]), int(offset[1])
    for block in blocks:
        if not isinstance(block, dict):
            continue
        rect = _box_to_rect(block.get("box"))
        if rect is None:
            continue
        x, y, w, h = rect
        score = block.get("score")
        yield OcrBox(
            text=str(block.get("text") or ""),
            bbox=(x + ox, y + oy, w, h),
            score=None if score is None else float(score),
        )


class OcrClient:
    """按 `umi_ocr` 配置段调用 Umi-OCR。任何传输或服务端错误都抛 FatalOcrError。"""

    def __init__(self, cfg: Optional[Dict[str, Any]] = None) -> None:
        section = dict((cfg or {}).get("umi_ocr", {}) or {})
        self.base_url = str(section.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = float(section.get("timeout_sec", 2.5) or 2.5)
        self.options = dict(section.get("options", {}) or {})

    def _request(self, image: ImageLike) -> Dict[str, Any]:
        options = dict(self.options)
        options["data.format"] = "dict"
        try:
            resp = requests.post(
                f"{self.base_url}/api/ocr",
                json={"base64": _encode_png(image), "options": options},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise FatalOcrError(f"Umi-OCR 请求失败: {exc}") from exc
        code = int(payload.get("code", 0) or 0)
        if code not in (_CODE_OK, _CODE_NO_TEXT):
            raise FatalOcrError(f"Umi-OCR 识别失败: code={code}, data={payload.get('data')}")
        return payload

    def text(self, image: ImageLike, *, offset: Tuple[int, int] = (0, 0)) -> List[OcrBox]:
        """识别文本框；offset 会加到每个框的左上角（裁剪图 -> 全屏坐标）。"""
        payload = self._request(image)
        if int(payload.get("code", 0) or 0) == _CODE_NO_TEXT:
            return []
        return list(_iter_boxes(payload.get("data"), offset))


def recognize_text(
    image: ImageLike,
    *,
    cfg: Optional[Dict[str, Any]] = None,
    offset: Tuple[int, int] = (0, 0),
) -> List[OcrBox]:
    return OcrClient(cfg).text(image, offset=offset)


def extract_amounts(text: str) -> List[Decimal]:
    """从文本中提取独立的数字/小数（先去掉千分位逗号）。"""
    source = (text or "").replace(",", "").replace("，", "")
    values: List[Decimal] = []
    for match in _AMOUNT_RE.finditer(source):
        try:
            values.append(Decimal(match.group(1)))
        except InvalidOperation:
            continue
    return values


def find_text(
    boxes: Iterable[OcrBox],
    target: str,
    *,
    exclude: Iterable[str] = (),
) -> Optional[OcrBox]:
    """返回首个包含 target 且不包含任何 exclude 片段的文本框。"""
    skip = tuple(exclude)
    for box in boxes:
        text = box.text or ""
        if target.lower() not in text.lower():
            continue
        if any(part in text for part in skip):
            continue
        return box
    return None


__all__ = [
    "OcrBox",
    "OcrClient",
    "extract_amounts",
    "find_text",
    "recognize_text",
]
