"""
余额记录与任务执行日志的持久化。
"""

from __future__ import annotations

import datetime as _dt
import json
import threading
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from auto_balance.core.models import BalanceSample, ChannelType

_LOCK = threading.Lock()

STATUS_STARTING = "STARTING"
STATUS_SUCCESS = "SUCCESS"
STATUS_FAILURE = "FAILURE"


@dataclass
class HistoryPaths:
    base_dir: Path
    balance_file: Path
    task_log_file: Path


def resolve_paths(base_dir: Path | str) -> HistoryPaths:
    base = Path(base_dir)
    base.mkdir(parents=True, exist_ok=True)
    return HistoryPaths(
        base_dir=base,
        balance_file=base / "balances.json",
        task_log_file=base / "task_log.jsonl",
    )


def _now_iso(ts: Optional[float] = None) -> Tuple[float, str]:
    t = time.time() if ts is None else float(ts)
    try:
        label = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(t))
    except Exception:
        label = str(t)
    return t, label


class BalanceRepository:
    """余额按 (渠道, 日期) 去重保存；任务执行日志逐行追加。"""

    def __init__(self, paths: HistoryPaths) -> None:
        self.paths = paths

    # ---------- 余额 ----------
    def _read_balances(self) -> List[Dict[str, Any]]:
        path = self.paths.balance_file
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except Exception:
            return []
        return [r for r in raw if isinstance(r, dict)] if isinstance(raw, list) else []

    def _write_balances(self, rows: List[Dict[str, Any]]) -> None:
        path = self.paths.balance_file
        tmp = path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(rows, fh, ensure_ascii=False, indent=2)
        tmp.replace(path)

    def upsert_balance(self, channel: ChannelType, amount: Decimal, recorded_at: str) -> BalanceSample:
        sample = BalanceSample(ChannelType(channel), Decimal(amount), str(recorded_at))
        record = sample.to_dict()
        with _LOCK:
            rows = [
                r
                for r in self._read_balances()
                if not (r.get("channel") == record["channel"] and r.get("recorded_at") == record["recorded_at"])
            ]
            rows.append(record)
            rows.sort(key=lambda r: (str(r.get("recorded_at", "")), str(r.get("channel", ""))))
            self._write_balances(rows)
        return sample

    def balances(self, *, days: Optional[int] = None, today: Optional[_dt.date] = None) -> List[BalanceSample]:
        with _LOCK:
            rows = self._read_balances()
        result: List[BalanceSample] = []
        cutoff = None
        if days is not None:
            cutoff = ((today or _dt.date.today()) - _dt.timedelta(days=max(0, int(days) - 1))).strftime("%Y-%m-%d")
        for row in rows:
            try:
                sample = BalanceSample.from_dict(row)
            except (KeyError, ValueError, ArithmeticError):
                continue
            if cutoff is not None and sample.recorded_at < cutoff:
                continue
            result.append(sample)
        return result

    # ---------- 任务执行日志 ----------
    def append_task_log(
        self,
        task_id: str,
        task_name: str,
        status: str,
        *,
        logs: str = "",
        ts: Optional[float] = None,
    ) -> Dict[str, Any]:
        now_ts, iso = _now_iso(ts)
        record = {
            "ts": now_ts,
            "iso": iso,
            "task_id": str(task_id),
            "task_name": str(task_name),
            "status": str(status),
            "logs": str(logs or ""),
        }
        with _LOCK:
            with self.paths.task_log_file.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record, ensure_ascii=False) + "\n")
        return record

    def task_logs(self, task_id: Optional[str] = None) -> List[Dict[str, Any]]:
        path = self.paths.task_log_file
        if not path.exists():
            return []
        out: List[Dict[str, Any]] = []
        with _LOCK:
            with path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        rec = json.loads(line)
                    except ValueError:
                        continue
                    if task_id is None or rec.get("task_id") == task_id:
                        out.append(rec)
        return out


def new_task_id() -> str:
    return uuid.uuid4().hex[:12]


__all__ = [
    "BalanceRepository",
    "HistoryPaths",
    "STATUS_FAILURE",
    "STATUS_STARTING",
    "STATUS_SUCCESS",
    "new_task_id",
    "resolve_paths",
]
