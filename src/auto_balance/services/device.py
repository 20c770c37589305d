"""
设备界面操作封装（无障碍节点查询、手势点击、截图、应用启动）。

- Device：接口约定，所有调用都可能失败或返回空结果；
- AdbDevice：基于 adb + uiautomator 的实现；
- UiThreadDevice：将点击与截图统一派发到单一 UI 线程执行。
"""

from __future__ import annotations

import io
import os
import re
import subprocess
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from auto_balance.core.models import LaunchResult

_BOUNDS_RE = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")
_FOCUS_RE = re.compile(r"mCurrentFocus=Window\{\S+ \S+ ([^/\s}]+)")


@dataclass
class Node:
    """界面节点快照。bounds 为 (left, top, right, bottom)。"""

    resource_id: str = ""
    text: str = ""
    bounds: Tuple[int, int, int, int] = (0, 0, 0, 0)
    clickable: bool = False
    children: List["Node"] = field(default_factory=list)

    @property
    def center(self) -> Tuple[int, int]:
        left, top, right, bottom = self.bounds
        return (left + right) // 2, (top + bottom) // 2

    @property
    def left(self) -> int:
        return self.bounds[0]


class Device:
    """设备能力接口。"""

    def find_by_id(self, resource_id: str) -> List[Node]:
        raise NotImplementedError

    def click_node(self, node: Node) -> bool:
        x, y = node.center
        return self.gesture_click(x, y)

    def gesture_click(self, x: float, y: float) -> bool:
        raise NotImplementedError

    def take_screenshot(self) -> Optional["Image.Image"]:
        raise NotImplementedError

    def package_name(self) -> str:
        raise NotImplementedError

    def launch_app(self, package: str, *, restart: bool = True) -> LaunchResult:
        raise NotImplementedError

    def close(self) -> None:
        return None


def parse_bounds(raw: str) -> Tuple[int, int, int, int]:
    match = _BOUNDS_RE.search(raw or "")
    if not match:
        return (0, 0, 0, 0)
    left, top, right, bottom = (int(v) for v in match.groups())
    return left, top, right, bottom


def parse_ui_xml(xml_text: str) -> List[Node]:
    """解析 uiautomator dump，返回根节点列表（保留层级）。"""
    end = xml_text.rfind(">")
    if end < 0:
        return []
    try:
        root = ET.fromstring(xml_text[: end + 1])
    except ET.ParseError:
        return []

    def _build(elem: ET.Element) -> Node:
        return Node(
            resource_id=elem.get("resource-id", "") or "",
            text=elem.get("text", "") or "",
            bounds=parse_bounds(elem.get("bounds", "")),
            clickable=(elem.get("clickable", "false") == "true"),
            children=[_build(child) for child in elem if child.tag == "node"],
        )

    return [_build(child) for child in root if child.tag == "node"]


def iter_nodes(nodes: Sequence[Node]):
    for node in nodes:
        yield node
        yield from iter_nodes(node.children)


class AdbDevice(Device):
    """通过 adb 操作 Android 设备。"""

    def __init__(self, cfg: Dict[str, Any]) -> None:
        dev = dict(cfg.get("device", {}) or {})
        self.adb_path = str(dev.get("adb_path", "adb") or "adb")
        self.serial = str(dev.get("serial", "") or "")
        self.timeout = float(dev.get("command_timeout_sec", 15) or 15)

    def _cmd(self, *args: str) -> List[str]:
        cmd = [self.adb_path]
        if self.serial:
            cmd.extend(["-s", self.serial])
        cmd.extend(args)
        return cmd

    def _run(self, *args: str, binary: bool = False) -> Tuple[int, Any]:
        try:
            result = subprocess.run(
                self._cmd(*args),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                creationflags=0x08000000 if os.name == "nt" else 0,
            )
        except (OSError, subprocess.TimeoutExpired):
            return -1, b"" if binary else ""
        if binary:
            return result.returncode, result.stdout
        return result.returncode, result.stdout.decode("utf-8", errors="replace")

    def dump_ui(self) -> List[Node]:
        code, out = self._run("exec-out", "uiautomator", "dump", "/dev/tty")
        if code != 0 or not out:
            return []
        return parse_ui_xml(out)

    def find_by_id(self, resource_id: str) -> List[Node]:
        return [n for n in iter_nodes(self.dump_ui()) if n.resource_id == resource_id]

    def gesture_click(self, x: float, y: float) -> bool:
        code, _ = self._run("shell", "input", "tap", str(int(round(x))), str(int(round(y))))
        return code == 0

    def take_screenshot(self) -> Optional["Image.Image"]:
        code, raw = self._run("exec-out", "screencap", "-p", binary=True)
        if code != 0 or not raw:
            return None
        try:
            with Image.open(io.BytesIO(raw)) as img:
                return img.convert("RGB")
        except OSError:
            return None

    def package_name(self) -> str:
        code, out = self._run("shell", "dumpsys", "window")
        if code != 0:
            return ""
        match = _FOCUS_RE.search(out or "")
        return match.group(1) if match else ""

    def is_installed(self, package: str) -> bool:
        code, out = self._run("shell", "pm", "path", package)
        return code == 0 and "package:" in (out or "")

    def launch_app(self, package: str, *, restart: bool = True) -> LaunchResult:
        if not self.is_installed(package):
            return LaunchResult(False, code="not_installed", error=f"{package} 未安装")
        if restart:
            self._run("shell", "am", "force-stop", package)
        code, out = self._run(
            "shell", "monkey", "-p", package, "-c", "android.intent.category.LAUNCHER", "1"
        )
        if code != 0 or "No activities found" in (out or ""):
            return LaunchResult(False, code="launch_error", error=f"无法启动 {package}")
        return LaunchResult(True, code="ok", details={"restart": restart})


class UiThreadDevice(Device):
    """将点击与截图派发到单一 UI 线程，其余调用直接转发。"""

    def __init__(self, inner: Device) -> None:
        self.inner = inner
        self._ui = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ui")

    def _on_ui(self, fn: Callable[..., Any], *args: Any) -> Any:
        return self._ui.submit(fn, *args).result()

    def find_by_id(self, resource_id: str) -> List[Node]:
        return self.inner.find_by_id(resource_id)

    def click_node(self, node: Node) -> bool:
        return self._on_ui(self.inner.click_node, node)

    def gesture_click(self, x: float, y: float) -> bool:
        return self._on_ui(self.inner.gesture_click, x, y)

    def take_screenshot(self) -> Optional["Image.Image"]:
        return self._on_ui(self.inner.take_screenshot)

    def package_name(self) -> str:
        return self.inner.package_name()

    def launch_app(self, package: str, *, restart: bool = True) -> LaunchResult:
        return self.inner.launch_app(package, restart=restart)

    def close(self) -> None:
        self._ui.shutdown(wait=True)
        self.inner.close()


__all__ = [
    "AdbDevice",
    "Device",
    "Node",
    "UiThreadDevice",
    "iter_nodes",
    "parse_bounds",
    "parse_ui_xml",
]
