"""
核心数据模型定义。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

# (left, top, width, height)，像素坐标
Region = Tuple[int, int, int, int]


class ChannelType(str, enum.Enum):
    """支付渠道。值用作持久化键。"""

    ALIPAY = "alipay"
    WECHAT = "wechat"
    UNIONPAY = "unionpay"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ChannelType.ALIPAY: "支付宝",
    ChannelType.WECHAT: "微信",
    ChannelType.UNIONPAY: "云闪付",
}


@dataclass(frozen=True)
class NormRect:
    """归一化矩形，各分量为源图宽/高的比例，原点左上。"""

    x: float
    y: float
    w: float
    h: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.w / 2.0, self.y + self.h / 2.0


@dataclass(frozen=True)
class BalanceSample:
    channel: ChannelType
    amount: Decimal
    recorded_at: str  # yyyy-MM-dd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "amount": str(self.amount),
            "recorded_at": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BalanceSample":
        return cls(
            channel=ChannelType(str(data["channel"])),
            amount=Decimal(str(data["amount"])),
            recorded_at=str(data["recorded_at"]),
        )


@dataclass
class LaunchResult:
    ok: bool
    code: str
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


__all__ = ["BalanceSample", "ChannelType", "LaunchResult", "NormRect", "Region"]
