"""
投屏窗口（如 scrcpy）上的屏幕操作：点击与截图走 PyAutoGUI，节点查询仍走 adb。
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from PIL import Image

from auto_balance.core.common import safe_sleep
from auto_balance.services.device import AdbDevice


class MirrorDevice(AdbDevice):
    """把设备坐标按比例映射到桌面上的投屏窗口区域。"""

    def __init__(self, cfg: Dict[str, Any], step_delay: float = 0.01) -> None:
        super().__init__(cfg)
        dev = dict(cfg.get("device", {}) or {})
        region = list(dev.get("mirror_region") or [])
        size = list(dev.get("screen_size") or [])
        if len(region) != 4 or len(size) != 2:
            raise ValueError("mirror 后端需要配置 device.mirror_region 与 device.screen_size")
        self.region: Tuple[int, int, int, int] = tuple(int(v) for v in region)  # type: ignore[assignment]
        self.screen_size: Tuple[int, int] = (int(size[0]), int(size[1]))
        self.step_delay = float(step_delay or 0.01)
        try:
            import pyautogui  # type: ignore

            _ = getattr(pyautogui, "screenshot")
        except Exception as exc:
            raise RuntimeError("缺少 pyautogui 或其依赖，请安装 pyautogui。") from exc

    @property
    def _pg(self):  # type: ignore
        import pyautogui  # type: ignore

        return pyautogui

    def to_desktop(self, x: float, y: float) -> Tuple[int, int]:
        left, top, width, height = self.region
        sw, sh = self.screen_size
        return (
            int(left + float(x) * width / max(1, sw)),
            int(top + float(y) * height / max(1, sh)),
        )

    def gesture_click(self, x: float, y: float) -> bool:
        dx, dy = self.to_desktop(x, y)
        try:
            self._pg.moveTo(dx, dy)
            self._pg.click(dx, dy)
        except Exception:
            return False
        safe_sleep(self.step_delay)
        return True

    def take_screenshot(self) -> Optional["Image.Image"]:
        left, top, width, height = self.region
        try:
            shot = self._pg.screenshot(region=(left, top, width, height))
        except Exception:
            return None
        if shot is None:
            return None
        # 统一缩放回设备分辨率，上层坐标始终是设备坐标
        return shot.convert("RGB").resize(self.screen_size, Image.NEAREST)


__all__ = ["MirrorDevice"]
