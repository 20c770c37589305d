"""
余额读取：连续两次采样一致才认为稳定。

- 文本以 `**` 开头表示金额被隐藏，调用一次 reveal 后重读（不计入采样次数）；
- 以 `--` 开头表示仍在加载，等待后重读（不计入采样次数，但有上限）；
- 无法解析的文本计入采样，并打断连续一致。
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Iterable, Optional

from auto_balance.core.common import safe_sleep
from auto_balance.core.exceptions import BalanceNotStableError, ElementNotFoundError

TextProvider = Callable[[], Optional[str]]

_CENT = Decimal("0.01")
_STRIP_CHARS = (",", "，", "¥", "￥", "元", " ", "\t", "\n", "\u00a0")


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """去掉千分位/货币符号后解析为两位小数（四舍五入）。"""
    if text is None:
        return None
    source = str(text)
    for ch in _STRIP_CHARS:
        source = source.replace(ch, "")
    if not source:
        return None
    try:
        value = Decimal(source)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    try:
        return value.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # 位数超出精度（OCR 误读出的长数字串）
        return None


def is_hidden(text: Optional[str]) -> bool:
    return str(text or "").strip().startswith("**")


def is_loading(text: Optional[str]) -> bool:
    return str(text or "").strip().startswith("--")


def is_masked(text: Optional[str]) -> bool:
    return is_hidden(text) or is_loading(text)


def read_stable_amount(
    provider: TextProvider,
    *,
    max_samples: int = 5,
    sample_delay: float = 1.0,
    reveal: Optional[Callable[[], object]] = None,
    restore_mask: bool = False,
    max_placeholder_waits: int = 10,
    sleep: Callable[[float], None] = safe_sleep,
    on_log: Optional[Callable[[str], None]] = None,
) -> Decimal:
    def _log(msg: str) -> None:
        if on_log is not None:
            on_log(msg)

    previous: Optional[Decimal] = None
    samples = 0
    waits = 0
    revealed = False
    try:
        while samples < max_samples:
            text = provider()
            if is_hidden(text) and reveal is not None and not revealed:
                _log("金额被隐藏，切换可见性")
                reveal()
                revealed = True
                sleep(sample_delay)
                continue
            if is_masked(text):
                waits += 1
                if waits > max_placeholder_waits:
                    raise BalanceNotStableError(f"金额占位符持续存在: {text!r}")
                _log(f"金额仍为占位符 {text!r}，等待重读")
                sleep(sample_delay)
                continue

            value = parse_amount(text)
            samples += 1
            _log(f"第 {samples} 次采样: {text!r} -> {value}")
            if value is not None and previous is not None and value == previous:
                return value
            previous = value
            if samples < max_samples:
                sleep(sample_delay)
        raise BalanceNotStableError(f"{max_samples} 次采样内余额未稳定")
    finally:
        if restore_mask and revealed and reveal is not None:
            try:
                reveal()
            except Exception as exc:
                _log(f"恢复隐藏状态失败: {exc}")


def read_stable_sum(providers: Iterable[TextProvider], **kwargs) -> Decimal:
    """逐个区域稳定读取后求和（微信零钱 + 零钱通）。"""
    total = Decimal("0.00")
    for provider in providers:
        total += read_stable_amount(provider, **kwargs)
    return total.quantize(_CENT, rounding=ROUND_HALF_UP)


def read_with_retries(
    read: Callable[[], Decimal],
    *,
    attempts: int = 3,
    retry_delay: float = 2.0,
    tag: str = "余额",
    sleep: Callable[[float], None] = safe_sleep,
    on_log: Optional[Callable[[str], None]] = None,
) -> Decimal:
    """整体重试余额读取；全部失败时抛出 BalanceNotStableError 并链接最后一次原因。"""
    last_exc: Optional[BaseException] = None
    total = max(1, int(attempts))
    for idx in range(1, total + 1):
        try:
            return read()
        except (BalanceNotStableError, ElementNotFoundError, ValueError) as exc:
            last_exc = exc
            if on_log is not None:
                on_log(f"[{tag}] 第 {idx}/{total} 次读取失败: {exc}")
            if idx < total:
                sleep(retry_delay)
    raise BalanceNotStableError(f"[{tag}] {total} 次读取均失败") from last_exc


__all__ = [
    "is_hidden",
    "is_loading",
    "is_masked",
    "parse_amount",
    "read_stable_amount",
    "read_stable_sum",
    "read_with_retries",
]
