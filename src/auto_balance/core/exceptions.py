"""
核心异常定义。
"""

from __future__ import annotations


class AutomationError(RuntimeError):
    """自动化流程异常基类。"""


class ElementNotFoundError(AutomationError):
    """界面节点或区域未找到。"""


class BalanceNotStableError(AutomationError):
    """余额多次采样仍未稳定。"""


class ChainAbortedError(AutomationError):
    """整条链路被致命错误或取消终止。"""


class FatalOcrError(RuntimeError):
    """Umi OCR 致命错误。"""


__all__ = [
    "AutomationError",
    "BalanceNotStableError",
    "ChainAbortedError",
    "ElementNotFoundError",
    "FatalOcrError",
]
