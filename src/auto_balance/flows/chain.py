"""
渠道串联：支付宝 -> 微信 -> 云闪付 -> 收尾。
"""

from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from typing import Optional

from auto_balance.core.context import FlowContext
from auto_balance.core.engine import StepCollector, StepEngine, StepOutcome, Stop
from auto_balance.flows.alipay import AlipayFlow
from auto_balance.flows.base import BalanceStep
from auto_balance.flows.unionpay import UnionPayFlow
from auto_balance.flows.wechat import WeChatFlow

ENTRY_STEP = BalanceStep.RESTART_ALIPAY
TAG = "自动化获取余额"


def register_chain(collector: StepCollector, ctx: FlowContext) -> StepCollector:
    AlipayFlow(ctx).register(collector, BalanceStep.RESTART_WECHAT)
    WeChatFlow(ctx).register(collector, BalanceStep.RESTART_UNIONPAY)
    UnionPayFlow(ctx).register(collector, BalanceStep.FINALIZE)
    collector.next(BalanceStep.FINALIZE, lambda: finalize(ctx))
    return collector


def finalize(ctx: FlowContext) -> StepOutcome:
    ctx.tracker.mark_chain_done()
    summary = "余额获取完毕"
    ctx.recorder.i(TAG, summary)

    back = str(ctx.cfg.get("return_package", "") or "")
    if back and ctx.device.package_name() == back:
        ctx.recorder.d(TAG, f"{back} 已在前台")
    elif back:
        result = ctx.device.launch_app(back, restart=False)
        if not result.ok:
            ctx.recorder.w(TAG, f"返回 {back} 失败: {result.error or result.code}")

    completion = ctx.completion
    if completion is None:
        ctx.recorder.e(TAG, "未绑定完成句柄，无法通知调用方")
        return Stop("no completion")
    if not completion.done():
        try:
            completion.set_result(summary)
        except InvalidStateError:
            pass
    return Stop()


def run_chain(
    engine: StepEngine,
    ctx: FlowContext,
    completion: Optional[Future] = None,
    *,
    entry_step: BalanceStep = ENTRY_STEP,
):
    """链路入口：显式绑定完成句柄后交给引擎执行，返回工作线程。"""
    ctx.bind_completion(completion)
    return engine.execute(
        lambda collector: register_chain(collector, ctx),
        entry_step,
        completion,
        stop_event=ctx.stop_event,
    )


__all__ = ["ENTRY_STEP", "finalize", "register_chain", "run_chain"]
