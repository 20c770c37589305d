"""
支付宝：重启 -> 理财 Tab -> 读取总资产。
"""

from __future__ import annotations

from typing import Optional

from auto_balance.core.balance_reader import read_stable_amount
from auto_balance.core.engine import StepCollector, StepOutcome, Success
from auto_balance.core.models import ChannelType, NormRect
from auto_balance.flows.base import BalanceStep, BaseBalanceFlow

TABS_ID = "android:id/tabs"
AMOUNT_ID = "com.alipay.android.widget.fortunehome:id/fh_tv_assets_amount_num"
EYE_ID = "com.alipay.android.widget.fortunehome:id/hide_layout"
WEALTH_TAB_LABEL = "alipay_wealth_tab"


class AlipayFlow(BaseBalanceFlow):
    channel = ChannelType.ALIPAY
    tag = "支付宝自动化"

    def register(self, collector: StepCollector, next_step: BalanceStep) -> None:
        collector.next(
            BalanceStep.RESTART_ALIPAY,
            lambda: self.restart_step(BalanceStep.ENTER_ALIPAY_WEALTH_TAB, next_step),
        ).next(
            BalanceStep.ENTER_ALIPAY_WEALTH_TAB,
            self.enter_wealth_tab,
        ).next(
            BalanceStep.GET_ALIPAY_BALANCE,
            lambda: self.get_balance(next_step),
        )

    def _wealth_tab_rect(self) -> Optional[NormRect]:
        size = self.ctx.screen_size()
        containers = self.ctx.device.find_by_id(TABS_ID)
        if size is None or not containers:
            return None
        tabs = sorted(containers[0].children, key=lambda n: n.left)
        if len(tabs) < 2:
            return None
        return self.node_rect(tabs[1], size)

    def enter_wealth_tab(self) -> StepOutcome:
        size = self.ctx.screen_size()
        if size is None:
            self.log_w("无法截图，跳过理财 Tab 点击")
            return Success(BalanceStep.GET_ALIPAY_BALANCE)
        point = self.ctx.resolver.resolve(WEALTH_TAB_LABEL, self._wealth_tab_rect, (0, 0, size[0], size[1]))
        if point is None:
            self.log_w("未找到理财 Tab")
        else:
            self.tap_verified(WEALTH_TAB_LABEL, point)
        return Success(BalanceStep.GET_ALIPAY_BALANCE, delay=float(self.ctx.automation("sample_delay_sec", 1.0)))

    def get_balance(self, next_step: BalanceStep) -> StepOutcome:
        def _read():
            return read_stable_amount(
                lambda: self.node_text(AMOUNT_ID),
                max_samples=int(self.ctx.automation("max_samples", 5)),
                sample_delay=float(self.ctx.automation("sample_delay_sec", 1.0)),
                reveal=lambda: self.click_first(EYE_ID),
                restore_mask=True,
                sleep=self.ctx.sleep,
                on_log=self.log_d,
            )

        return self.balance_step(_read, next_step, attempts=int(self.setting("balance_attempts", 3)))


__all__ = ["AlipayFlow"]
