"""Test key/value store, coordinate cache, update tracker and balance repository."""
from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal

from auto_balance.core.context import FlowContext
from auto_balance.core.models import ChannelType
from auto_balance.flows import BalanceStep, WeChatFlow
from auto_balance.services.history import (
    STATUS_FAILURE,
    STATUS_STARTING,
    BalanceRepository,
    resolve_paths,
)
from auto_balance.services.store import LAST_UPDATE_KEY, CoordinateCache, KeyValueStore, UpdateTracker


class TestKeyValueStore:
    def test_persists_to_disk(self, tmp_path):
        path = tmp_path / "store.json"
        store = KeyValueStore(path)
        store.put("a", 1)
        store.update({"b": 2}, remove=["a"])
        reloaded = KeyValueStore(path)
        assert reloaded.get("a") is None
        assert reloaded.get("b") == 2

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        assert KeyValueStore(path).keys() == ()


class TestCoordinateCache:
    def test_put_get_invalidate(self, store):
        cache = CoordinateCache(store)
        cache.put("tab", (1, 2))
        cache.put_rect("row", (1, 2, 3, 4))
        assert cache.get("tab") == (1, 2)
        assert cache.get_rect("row") == (1, 2, 3, 4)
        cache.invalidate("tab")
        cache.invalidate("row")
        assert cache.get("tab") is None
        assert cache.get_rect("row") is None

    def test_migrates_legacy_flat_keys(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(
            json.dumps(
                {
                    "wx_我_x": 900,
                    "wx_我_y": 2200,
                    "wx_服务_x": "bad",
                    "wx_服务_y": 5,
                    "wx_钱包_x": 0,
                    "wx_钱包_y": 0,
                    "orphan_x": 3,
                }
            ),
            encoding="utf-8",
        )
        store = KeyValueStore(path)
        cache = CoordinateCache(store)
        assert cache.get("wechat_me_tab") == (900, 2200)
        # (0, 0) 与非数字都表示旧版未找到
        assert cache.get("wechat_service_tab") is None
        assert cache.get("wechat_wallet") is None
        assert not any(key.startswith("wx_") for key in store.keys())
        assert "orphan_x" in store.keys()
        assert CoordinateCache(KeyValueStore(path)).get("wechat_me_tab") == (900, 2200)

    def test_existing_coordinate_wins_over_legacy(self, store):
        store.update({"coords": {"wechat_me_tab": [1, 2]}, "wx_我_x": 900, "wx_我_y": 2200})
        assert CoordinateCache(store).get("wechat_me_tab") == (1, 2)

    def test_wechat_flow_taps_migrated_point(self, fast_cfg, device, ocr, store, repository, recorder):
        store.update({"wx_我_x": 300, "wx_我_y": 740})
        ctx = FlowContext(fast_cfg, device, ocr, store, repository, recorder=recorder)
        WeChatFlow(ctx).navigate(BalanceStep.ENTER_WECHAT_ME_TAB, BalanceStep.ENTER_WECHAT_SERVICE_TAB)
        assert device.taps == [(300.0, 740.0)]
        assert ocr.calls == []


class TestUpdateTracker:
    def test_mark_and_reset(self, store):
        tracker = UpdateTracker(store)
        assert tracker.should_update(ChannelType.WECHAT)
        tracker.mark_updated(ChannelType.WECHAT)
        assert not tracker.should_update(ChannelType.WECHAT)
        assert tracker.should_update(ChannelType.ALIPAY)
        tracker.reset_all()
        assert tracker.should_update(ChannelType.WECHAT)

    def test_yesterday_needs_update(self, store):
        tracker = UpdateTracker(store)
        yesterday = dt.datetime.now() - dt.timedelta(days=1)
        tracker.mark_updated(ChannelType.UNIONPAY, ts=yesterday.timestamp())
        assert tracker.should_update(ChannelType.UNIONPAY)

    def test_chain_timestamp(self, store):
        tracker = UpdateTracker(store)
        assert tracker.last_chain_update() == 0.0
        tracker.mark_chain_done(ts=123.0)
        assert store.get(LAST_UPDATE_KEY) == 123.0


class TestBalanceRepository:
    def test_upsert_replaces_same_day(self, tmp_path):
        repo = BalanceRepository(resolve_paths(tmp_path))
        repo.upsert_balance(ChannelType.ALIPAY, Decimal("1.00"), "2026-10-18")
        repo.upsert_balance(ChannelType.ALIPAY, Decimal("2.00"), "2026-10-18")
        repo.upsert_balance(ChannelType.WECHAT, Decimal("3.50"), "2026-10-18")
        repo.upsert_balance(ChannelType.ALIPAY, Decimal("4.00"), "2026-10-19")
        samples = repo.balances()
        assert [(s.channel, s.amount, s.recorded_at) for s in samples] == [
            (ChannelType.ALIPAY, Decimal("2.00"), "2026-10-18"),
            (ChannelType.WECHAT, Decimal("3.50"), "2026-10-18"),
            (ChannelType.ALIPAY, Decimal("4.00"), "2026-10-19"),
        ]

    def test_days_filter(self, tmp_path):
        repo = BalanceRepository(resolve_paths(tmp_path))
        repo.upsert_balance(ChannelType.ALIPAY, Decimal("1"), "2026-10-01")
        repo.upsert_balance(ChannelType.ALIPAY, Decimal("2"), "2026-10-19")
        recent = repo.balances(days=7, today=dt.date(2026, 10, 19))
        assert [s.recorded_at for s in recent] == ["2026-10-19"]

    def test_task_log(self, tmp_path):
        repo = BalanceRepository(resolve_paths(tmp_path))
        repo.append_task_log("t1", "GetAppBalance", STATUS_STARTING)
        repo.append_task_log("t2", "GetAppBalance", STATUS_STARTING)
        repo.append_task_log("t1", "GetAppBalance", STATUS_FAILURE, logs="trace")
        records = repo.task_logs("t1")
        assert [r["status"] for r in records] == [STATUS_STARTING, STATUS_FAILURE]
        assert records[-1]["logs"] == "trace"
        assert len(repo.task_logs()) == 3
