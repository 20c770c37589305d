"""
Shared fixtures for the auto-balance test suite.

Provides fake device / OCR collaborators, temp storage and a zero-delay
configuration so that all tests run WITHOUT a phone, adb or Umi-OCR.
"""

from __future__ import annotations

import copy
import threading
from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple

import pytest
from PIL import Image

from auto_balance.config import DEFAULT_CONFIG
from auto_balance.core.context import FlowContext
from auto_balance.core.logging import LogRecorder
from auto_balance.core.models import LaunchResult
from auto_balance.services.device import Device, Node
from auto_balance.services.history import BalanceRepository, resolve_paths
from auto_balance.services.ocr import OcrBox
from auto_balance.services.store import KeyValueStore

SCREEN_SIZE = (360, 780)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeDevice(Device):
    """In-memory device.

    - ``texts[resource_id]`` is a queue of node texts; the last one repeats.
    - ``nodes[resource_id]`` returns fixed nodes (used for containers / markers).
    - Screenshots are a solid colour that changes after every tap, unless
      ``static_screen`` is set.
    """

    def __init__(
        self,
        *,
        size: Tuple[int, int] = SCREEN_SIZE,
        installed: Iterable[str] = (
            "com.eg.android.AlipayGphone",
            "com.tencent.mm",
            "com.unionpay",
        ),
        static_screen: bool = False,
        screenshots: bool = True,
    ) -> None:
        self.size = size
        self.installed = set(installed)
        self.static_screen = static_screen
        self.screenshots = screenshots
        self.nodes: Dict[str, List[Node]] = {}
        self.texts: Dict[str, deque] = {}
        self.taps: List[Tuple[float, float]] = []
        self.clicked: List[str] = []
        self.launched: List[Tuple[str, bool]] = []
        self.tap_threads: List[str] = []
        self.current_package = ""

    def set_texts(self, resource_id: str, values: Iterable[str]) -> None:
        self.texts[resource_id] = deque(values)

    def find_by_id(self, resource_id: str) -> List[Node]:
        if resource_id in self.texts:
            queue = self.texts[resource_id]
            if not queue:
                return []
            text = queue.popleft() if len(queue) > 1 else queue[0]
            return [Node(resource_id=resource_id, text=text, bounds=(10, 10, 50, 30))]
        return list(self.nodes.get(resource_id, []))

    def click_node(self, node: Node) -> bool:
        self.clicked.append(node.resource_id)
        return True

    def gesture_click(self, x: float, y: float) -> bool:
        self.taps.append((x, y))
        self.tap_threads.append(threading.current_thread().name)
        return True

    def take_screenshot(self) -> Optional[Image.Image]:
        if not self.screenshots:
            return None
        shade = 0 if self.static_screen else (len(self.taps) * 40) % 256
        return Image.new("RGB", self.size, (shade, shade, shade))

    def package_name(self) -> str:
        return self.current_package

    def launch_app(self, package: str, *, restart: bool = True) -> LaunchResult:
        self.launched.append((package, restart))
        if package not in self.installed:
            return LaunchResult(False, code="not_installed", error=f"{package} 未安装")
        self.current_package = package
        return LaunchResult(True, code="ok")


class FakeOcr:
    """Returns scripted OCR results; each call pops one entry (the last repeats)."""

    def __init__(self, results: Iterable[List[OcrBox]] = ()) -> None:
        self.results = deque(results)
        self.calls: List[Tuple[Tuple[int, int], Tuple[int, int]]] = []

    def text(self, image, *, offset: Tuple[int, int] = (0, 0)) -> List[OcrBox]:
        self.calls.append((tuple(image.size), tuple(offset)))
        if not self.results:
            return []
        boxes = self.results.popleft() if len(self.results) > 1 else self.results[0]
        ox, oy = offset
        return [OcrBox(b.text, (b.bbox[0] + ox, b.bbox[1] + oy, b.bbox[2], b.bbox[3]), b.score) for b in boxes]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fast_cfg(tmp_path):
    """Default config with every delay zeroed."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["paths"]["output_dir"] = str(tmp_path / "output")
    auto = cfg["automation"]
    auto.update(
        {
            "verify_settle_sec": 0,
            "sample_delay_sec": 0,
            "retry_delay_sec": 0,
            "click_jitter": [0, 0],
        }
    )
    for section in cfg["channels"].values():
        section["launch_settle_sec"] = 0
    cfg["channels"]["wechat"]["nav_settle_sec"] = 0
    cfg["channels"]["wechat"]["row_retry_delay_sec"] = 0
    cfg["channels"]["unionpay"]["detect_interval_sec"] = 0
    return cfg


@pytest.fixture
def recorder():
    return LogRecorder()


@pytest.fixture
def store():
    return KeyValueStore()


@pytest.fixture
def repository(tmp_path):
    return BalanceRepository(resolve_paths(tmp_path / "history"))


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def ocr():
    return FakeOcr()


@pytest.fixture
def ctx(fast_cfg, device, ocr, store, repository, recorder):
    return FlowContext(fast_cfg, device, ocr, store, repository, recorder=recorder)
