"""auto-balance 命令行入口。

- run：执行一次各渠道余额获取；
- segment：对一张截图运行区域分割，便于调试坐标；
- history：查看最近的余额记录。
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from auto_balance.config import ConfigPaths, ensure_default_config, load_config


def _load(cfg_path: Optional[str]):
    if cfg_path:
        return load_config(cfg_path)
    paths = ConfigPaths.from_root(os.getcwd())
    ensure_default_config(paths)
    return load_config(paths=paths)


def _cmd_run(args: argparse.Namespace) -> int:
    from auto_balance.core.logging import RECORDER
    from auto_balance.core.runner import BalanceJob

    cfg = _load(args.config)
    RECORDER.level = str(cfg.get("log_level", "info"))
    job = BalanceJob(cfg)
    result = job.run(force=bool(args.force), timeout=args.timeout)
    print(f"[{result.status}] {result.summary}")
    return 0 if result.ok else 1


def _cmd_segment(args: argparse.Namespace) -> int:
    from auto_balance.services.segmentation import segment

    image = Path(os.path.normpath(args.image))
    regions, mask = segment(image, max(1, int(args.width)), save_dir=args.save_dir, on_log=print)
    if mask is None:
        print("空图片，未分割")
        return 1
    h, w = mask.shape[:2]
    print(f"工作分辨率 {w}x{h}，候选区域 {len(regions)} 个")
    for idx, r in enumerate(regions):
        print(
            f"#{idx:02d} x={r.x:.4f} y={r.y:.4f} w={r.w:.4f} h={r.h:.4f}"
            f"  px=({int(r.x * w)},{int(r.y * h)},{int(round(r.w * w))},{int(round(r.h * h))})"
        )
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    from auto_balance.services.history import BalanceRepository, resolve_paths

    cfg = _load(args.config)
    repo = BalanceRepository(resolve_paths(ConfigPaths.from_config(cfg).output_dir))
    samples = repo.balances(days=args.days)
    if not samples:
        print("暂无余额记录")
        return 0
    for s in samples:
        print(f"{s.recorded_at}  {s.channel.display_name:<4}  {s.amount}")
    return 0


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="auto-balance", description="自动获取支付宝/微信/云闪付余额。")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="执行一次余额获取")
    run.add_argument("--force", action="store_true", help="忽略今日已更新标记，重新获取所有渠道")
    run.add_argument("--config", default=None, help="配置文件路径，默认 ./config.json")
    run.add_argument("--timeout", type=float, default=None, help="等待链路完成的超时时间（秒）")
    run.set_defaults(func=_cmd_run)

    seg = sub.add_parser("segment", help="对截图运行区域分割")
    seg.add_argument("image", help="截图路径")
    seg.add_argument("--width", type=int, default=320, help="工作分辨率宽度")
    seg.add_argument("--save-dir", default=None, help="保存灰度/二值/膨胀中间图的目录")
    seg.set_defaults(func=_cmd_segment)

    hist = sub.add_parser("history", help="查看余额记录")
    hist.add_argument("--days", type=int, default=7, help="最近 N 天")
    hist.add_argument("--config", default=None, help="配置文件路径，默认 ./config.json")
    hist.set_defaults(func=_cmd_history)
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """控制台脚本入口。"""
    args = _parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
