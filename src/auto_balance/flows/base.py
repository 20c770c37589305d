"""
渠道流程基类与步骤 id。
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from PIL import Image

from auto_balance.core.balance_reader import read_with_retries
from auto_balance.core.common import today_str
from auto_balance.core.context import FlowContext
from auto_balance.core.engine import FatalAbort, SkipChannel, StepCollector, StepOutcome, Success
from auto_balance.core.exceptions import BalanceNotStableError, ElementNotFoundError
from auto_balance.core.models import ChannelType, NormRect, Region
from auto_balance.core.verifier import click_and_verify
from auto_balance.services.device import Node
from auto_balance.services.ocr import find_text
from auto_balance.services.segmentation import crop_image, segment


class BalanceStep(enum.Enum):
    RESTART_ALIPAY = enum.auto()
    ENTER_ALIPAY_WEALTH_TAB = enum.auto()
    GET_ALIPAY_BALANCE = enum.auto()
    RESTART_WECHAT = enum.auto()
    ENTER_WECHAT_ME_TAB = enum.auto()
    ENTER_WECHAT_SERVICE_TAB = enum.auto()
    ENTER_WECHAT_WALLET = enum.auto()
    GET_WECHAT_BALANCE = enum.auto()
    RESTART_UNIONPAY = enum.auto()
    GET_UNIONPAY_BALANCE = enum.auto()
    FINALIZE = enum.auto()


class BaseBalanceFlow:
    """单个渠道的步骤脚本。子类实现 register，把自己的步骤登记到 collector。"""

    channel: ChannelType
    tag: str = "自动化"

    def __init__(self, ctx: FlowContext) -> None:
        self.ctx = ctx

    def register(self, collector: StepCollector, next_step: BalanceStep) -> None:
        raise NotImplementedError

    # ---------- 日志 ----------
    def log_d(self, msg: str) -> None:
        self.ctx.recorder.d(self.tag, msg)

    def log_i(self, msg: str) -> None:
        self.ctx.recorder.i(self.tag, msg)

    def log_w(self, msg: str) -> None:
        self.ctx.recorder.w(self.tag, msg)

    def log_e(self, msg: str, exc: Optional[BaseException] = None) -> None:
        self.ctx.recorder.e(self.tag, msg, exc)

    # ---------- 配置 ----------
    def setting(self, key: str, default):
        value = self.ctx.channel_cfg(self.channel).get(key, default)
        return default if value is None else value

    @property
    def package(self) -> str:
        return str(self.setting("package", ""))

    # ---------- 公共步骤 ----------
    def restart_step(self, first_step: BalanceStep, next_step: BalanceStep) -> StepOutcome:
        name = self.channel.display_name
        if not bool(self.setting("enabled", True)):
            return SkipChannel(next_step, f"{name} 已在配置中禁用")
        if not self.ctx.tracker.should_update(self.channel):
            return SkipChannel(next_step, f"{name} 今日已更新")
        result = self.ctx.device.launch_app(self.package, restart=True)
        if not result.ok:
            self.log_e(f"重启 {name} 失败: {result.error or result.code}")
            return SkipChannel(next_step, f"{name} 无法启动")
        self.log_i(f"已重启 {name}，开始获取余额")
        return Success(first_step, delay=float(self.setting("launch_settle_sec", 1.5)))

    def balance_step(
        self,
        read: Callable[[], Decimal],
        next_step: BalanceStep,
        *,
        attempts: int,
        retry_delay: Optional[float] = None,
    ) -> StepOutcome:
        delay = float(self.ctx.automation("retry_delay_sec", 2.0)) if retry_delay is None else retry_delay
        try:
            amount = read_with_retries(
                read,
                attempts=attempts,
                retry_delay=delay,
                tag=self.channel.display_name,
                sleep=self.ctx.sleep,
                on_log=self.log_w,
            )
        except BalanceNotStableError as exc:
            self.log_e(f"无法获取{self.channel.display_name}余额", exc)
            return FatalAbort(exc)
        self.save_balance(amount)
        return Success(next_step)

    def save_balance(self, amount: Decimal) -> None:
        self.ctx.tracker.mark_updated(self.channel)
        self.ctx.repository.upsert_balance(self.channel, amount, today_str())
        self.log_i(f"{self.channel.display_name}余额：{amount}")

    # ---------- 界面工具 ----------
    def node_text(self, resource_id: str) -> str:
        nodes = self.ctx.device.find_by_id(resource_id)
        if not nodes:
            raise ElementNotFoundError(f"未找到节点 {resource_id}")
        return nodes[0].text

    def click_first(self, resource_id: str) -> bool:
        nodes = self.ctx.device.find_by_id(resource_id)
        if not nodes:
            self.log_w(f"未找到可点击节点 {resource_id}")
            return False
        return self.ctx.device.click_node(nodes[0])

    def tap_verified(self, label: str, point: Tuple[int, int]) -> bool:
        jitter = self.ctx.automation("click_jitter", [4, 4])
        half = self.ctx.automation("verify_half_size", [40, 40])
        changed = click_and_verify(
            self.ctx.device,
            point,
            jitter=(int(jitter[0]), int(jitter[1])),
            max_attempts=int(self.ctx.automation("verify_attempts", 3)),
            settle_delay=float(self.ctx.automation("verify_settle_sec", 0.8)),
            half_size=(int(half[0]), int(half[1])),
            sleep=self.ctx.sleep,
        )
        if changed:
            self.log_d(f"[{label}] 点击 {point} 后界面已变化")
        else:
            self.log_w(f"[{label}] 点击 {point} 后界面未变化，继续后续步骤")
        return changed

    def screen_region(self, fx: float, fy: float, fw: float, fh: float) -> Optional[Region]:
        """按屏幕比例计算像素区域。"""
        size = self.ctx.screen_size()
        if size is None:
            return None
        width, height = size
        return int(width * fx), int(height * fy), int(width * fw), int(height * fh)

    def grab(self, region: Region) -> Optional["Image.Image"]:
        shot = self.ctx.device.take_screenshot()
        if shot is None:
            return None
        return crop_image(shot, region)

    def segment_pick(
        self,
        region: Region,
        strategy: Callable[[List[NormRect]], Optional[NormRect]],
    ) -> Optional[NormRect]:
        crop = self.grab(region)
        if crop is None:
            return None
        regions, _ = segment(crop, save_dir=self.ctx.debug_dir(), on_log=self.log_w)
        self.log_d(f"分割得到 {len(regions)} 个候选区域")
        return strategy(regions)

    def ocr_pick(self, region: Region, text: str, *, exclude: Tuple[str, ...] = ()) -> Optional[NormRect]:
        """在区域内按文字查找，返回相对该区域的归一化矩形。"""
        if self.ctx.ocr is None:
            return None
        crop = self.grab(region)
        if crop is None or crop.width == 0 or crop.height == 0:
            return None
        box = find_text(self.ctx.ocr.text(crop), text, exclude=exclude)
        if box is None:
            return None
        x, y, w, h = box.bbox
        return NormRect(x / crop.width, y / crop.height, w / crop.width, h / crop.height)

    @staticmethod
    def node_rect(node: Node, size: Tuple[int, int]) -> NormRect:
        left, top, right, bottom = node.bounds
        width, height = size
        return NormRect(left / width, top / height, (right - left) / width, (bottom - top) / height)


__all__ = ["BalanceStep", "BaseBalanceFlow"]
