"""
云闪付：重启 -> 识别新旧版界面 -> 读取余额。

新版：tv_tab_name 存在，金额节点 card_info_balance_bill_amount，小眼睛 card_title_eyes；
旧版：tablayout 存在，金额节点 tv_fortune_balance_value，小眼睛 iv_fortune_eye。
"""

from __future__ import annotations

from typing import Optional, Tuple

from auto_balance.core.balance_reader import read_stable_amount
from auto_balance.core.engine import SkipChannel, StepCollector, StepOutcome
from auto_balance.core.models import ChannelType
from auto_balance.flows.base import BalanceStep, BaseBalanceFlow

NEW_UI_MARKER = "com.unionpay:id/tv_tab_name"
OLD_UI_MARKER = "com.unionpay:id/tablayout"

# (金额节点, 小眼睛)
NEW_UI_IDS = ("com.unionpay:id/card_info_balance_bill_amount", "com.unionpay:id/card_title_eyes")
OLD_UI_IDS = ("com.unionpay:id/tv_fortune_balance_value", "com.unionpay:id/iv_fortune_eye")


class UnionPayFlow(BaseBalanceFlow):
    channel = ChannelType.UNIONPAY
    tag = "云闪付自动化"

    def register(self, collector: StepCollector, next_step: BalanceStep) -> None:
        collector.next(
            BalanceStep.RESTART_UNIONPAY,
            lambda: self.restart_step(BalanceStep.GET_UNIONPAY_BALANCE, next_step),
        ).next(
            BalanceStep.GET_UNIONPAY_BALANCE,
            lambda: self.get_balance(next_step),
        )

    def detect_ui(self) -> Optional[Tuple[str, str]]:
        """轮询判断界面版本；都未出现时返回 None。"""
        polls = max(1, int(self.setting("detect_polls", 5)))
        for idx in range(polls):
            if self.ctx.device.find_by_id(NEW_UI_MARKER):
                self.log_d("识别为新版界面")
                return NEW_UI_IDS
            if self.ctx.device.find_by_id(OLD_UI_MARKER):
                self.log_d("识别为旧版界面")
                return OLD_UI_IDS
            if idx + 1 < polls:
                self.ctx.sleep(float(self.setting("detect_interval_sec", 1.0)))
        return None

    def get_balance(self, next_step: BalanceStep) -> StepOutcome:
        ids = self.detect_ui()
        if ids is None:
            self.log_w("未识别到云闪付首页，跳过")
            return SkipChannel(next_step, "云闪付界面未识别")
        amount_id, eye_id = ids

        def _read():
            return read_stable_amount(
                lambda: self.node_text(amount_id),
                max_samples=int(self.ctx.automation("max_samples", 5)),
                sample_delay=float(self.ctx.automation("sample_delay_sec", 1.0)),
                reveal=lambda: self.click_first(eye_id),
                sleep=self.ctx.sleep,
                on_log=self.log_d,
            )

        return self.balance_step(_read, next_step, attempts=int(self.setting("balance_attempts", 5)))


__all__ = ["UnionPayFlow"]
