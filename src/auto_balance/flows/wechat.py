"""
微信：重启 -> 我 -> 服务 -> 钱包 -> 零钱 + 零钱通。

Tab 坐标优先走图像分割，分割无结果时退回 OCR 文字查找；结果写入坐标缓存。
余额行（零钱 / 零钱通）通过 OCR 定位并缓存矩形，每行金额分别稳定读取后求和。
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from auto_balance.core.balance_reader import is_masked, read_stable_sum
from auto_balance.core.engine import SkipChannel, StepCollector, StepOutcome, Success
from auto_balance.core.exceptions import ElementNotFoundError
from auto_balance.core.models import ChannelType, NormRect, Region
from auto_balance.flows.base import BalanceStep, BaseBalanceFlow
from auto_balance.services.ocr import extract_amounts, find_text
from auto_balance.services.segmentation import (
    strategy_first_col_right,
    strategy_last_two_center,
    strategy_top_most,
)

Strategy = Callable[[List[NormRect]], Optional[NormRect]]

# label, 屏幕比例区域 (x, y, w, h), 分割策略, OCR 文字
NAV_TARGETS = {
    BalanceStep.ENTER_WECHAT_ME_TAB: ("wechat_me_tab", (0.5, 0.5, 0.5, 0.5), strategy_last_two_center, "我"),
    BalanceStep.ENTER_WECHAT_SERVICE_TAB: ("wechat_service_tab", (0.0, 0.2, 0.5, 0.6), strategy_first_col_right, "服务"),
    BalanceStep.ENTER_WECHAT_WALLET: ("wechat_wallet", (0.5, 0.1, 0.5, 0.4), strategy_top_most, "钱包"),
}

CHANGE_LABEL = "零钱"
FUND_LABEL = "零钱通"
CHANGE_ROW = "wechat_change_row"
FUND_ROW = "wechat_change_fund_row"


class WeChatFlow(BaseBalanceFlow):
    channel = ChannelType.WECHAT
    tag = "微信自动化"

    def register(self, collector: StepCollector, next_step: BalanceStep) -> None:
        collector.next(
            BalanceStep.RESTART_WECHAT,
            lambda: self.restart_step(BalanceStep.ENTER_WECHAT_ME_TAB, next_step),
        ).next(
            BalanceStep.ENTER_WECHAT_ME_TAB,
            lambda: self.navigate(BalanceStep.ENTER_WECHAT_ME_TAB, BalanceStep.ENTER_WECHAT_SERVICE_TAB),
        ).next(
            BalanceStep.ENTER_WECHAT_SERVICE_TAB,
            lambda: self.navigate(BalanceStep.ENTER_WECHAT_SERVICE_TAB, BalanceStep.ENTER_WECHAT_WALLET),
        ).next(
            BalanceStep.ENTER_WECHAT_WALLET,
            lambda: self.navigate(BalanceStep.ENTER_WECHAT_WALLET, BalanceStep.GET_WECHAT_BALANCE),
        ).next(
            BalanceStep.GET_WECHAT_BALANCE,
            lambda: self.get_balance(next_step),
        )

    # ---------- 导航 ----------
    def navigate(self, step: BalanceStep, following: BalanceStep) -> StepOutcome:
        label, frac, strategy, text = NAV_TARGETS[step]
        settle = float(self.setting("nav_settle_sec", 1.0))
        region = self.screen_region(*frac)
        if region is None:
            self.log_w(f"无法截图，跳过“{text}”")
            return Success(following, delay=settle)

        def _fallback() -> Optional[NormRect]:
            rect = self.segment_pick(region, strategy)
            if rect is None:
                self.log_d(f"分割未找到“{text}”，尝试 OCR")
                rect = self.ocr_pick(region, text)
            return rect

        point = self.ctx.resolver.resolve(label, _fallback, region)
        if point is None:
            self.log_w(f"未在区域找到目标：“{text}”")
        else:
            self.tap_verified(label, point)
        return Success(following, delay=settle)

    # ---------- 余额 ----------
    def locate_rows(self) -> Optional[Tuple[Tuple[int, int, int, int], Tuple[int, int, int, int]]]:
        """返回 (零钱行, 零钱通行) 的屏幕矩形 (left, top, right, bottom)。"""
        change = self.ctx.coords.get_rect(CHANGE_ROW)
        fund = self.ctx.coords.get_rect(FUND_ROW)
        if change is not None and fund is not None:
            return change, fund
        if self.ctx.ocr is None:
            return None
        region = self.screen_region(0.1, 0.0, 0.9, 0.5)
        if region is None:
            return None
        attempts = max(1, int(self.setting("row_attempts", 3)))
        for idx in range(1, attempts + 1):
            crop = self.grab(region)
            if crop is not None:
                boxes = self.ctx.ocr.text(crop, offset=(region[0], region[1]))
                change_box = find_text(boxes, CHANGE_LABEL, exclude=(FUND_LABEL,))
                fund_box = find_text(boxes, FUND_LABEL)
                if change_box is not None and fund_box is not None:
                    change = _to_ltrb(change_box.bbox)
                    fund = _to_ltrb(fund_box.bbox)
                    self.ctx.coords.put_rect(CHANGE_ROW, change)
                    self.ctx.coords.put_rect(FUND_ROW, fund)
                    self.log_i(f"零钱行 {change}，零钱通行 {fund}")
                    return change, fund
            self.log_w(f"未找到“零钱”或“零钱通”，剩余 {attempts - idx} 次重试")
            if idx < attempts:
                self.ctx.sleep(float(self.setting("row_retry_delay_sec", 3.0)))
        return None

    def amount_region(self, row: Tuple[int, int, int, int]) -> Optional[Region]:
        """金额位于同一行的右半屏（到 19/20 宽度为止）。"""
        size = self.ctx.screen_size()
        if size is None:
            return None
        width, height = size
        _, top, _, bottom = row
        pad = max(4, (bottom - top) // 2)
        left = width // 2
        right = width * 19 // 20
        top = max(0, top - pad)
        bottom = min(height, bottom + pad)
        return left, top, max(1, right - left), max(1, bottom - top)

    def _amount_text(self, region: Region) -> str:
        crop = self.grab(region)
        if crop is None or self.ctx.ocr is None:
            raise ElementNotFoundError("无法截取金额区域")
        text = "".join(box.text for box in self.ctx.ocr.text(crop)).strip()
        if is_masked(text):
            return text
        values = extract_amounts(text)
        return str(values[0]) if values else text

    def get_balance(self, next_step: BalanceStep) -> StepOutcome:
        rows = self.locate_rows()
        if rows is None:
            self.log_w("无法找到“零钱”或“零钱通”，请检查微信版本")
            return SkipChannel(next_step, "微信余额行未找到")
        regions = [self.amount_region(row) for row in rows]
        if any(r is None for r in regions):
            return SkipChannel(next_step, "无法截图")

        def _read():
            providers = [(lambda r=region: self._amount_text(r)) for region in regions]
            return read_stable_sum(
                providers,
                max_samples=int(self.ctx.automation("max_samples", 5)),
                sample_delay=float(self.ctx.automation("sample_delay_sec", 1.0)),
                sleep=self.ctx.sleep,
                on_log=self.log_d,
            )

        return self.balance_step(_read, next_step, attempts=int(self.setting("balance_attempts", 3)))


def _to_ltrb(bbox: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
    x, y, w, h = bbox
    return x, y, x + w, y + h


__all__ = ["WeChatFlow"]
