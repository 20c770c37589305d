"""
核心业务模块导出。
"""

from __future__ import annotations

from .exceptions import AutomationError, BalanceNotStableError  # noqa: F401
from .models import BalanceSample, ChannelType, LaunchResult, NormRect  # noqa: F401

__all__ = [
    "AutomationError",
    "BalanceNotStableError",
    "BalanceSample",
    "ChannelType",
    "LaunchResult",
    "NormRect",
]
