"""
渠道流程。
"""

from __future__ import annotations

from .alipay import AlipayFlow
from .base import BalanceStep, BaseBalanceFlow
from .chain import ENTRY_STEP, finalize, register_chain, run_chain
from .unionpay import UnionPayFlow
from .wechat import WeChatFlow

__all__ = [
    "AlipayFlow",
    "BalanceStep",
    "BaseBalanceFlow",
    "ENTRY_STEP",
    "UnionPayFlow",
    "WeChatFlow",
    "finalize",
    "register_chain",
    "run_chain",
]
