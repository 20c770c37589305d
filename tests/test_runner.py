"""Test the daily balance job wrapper around the chain."""
from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from auto_balance.core.exceptions import BalanceNotStableError, ChainAbortedError
from auto_balance.core.models import ChannelType
from auto_balance.core.runner import TASK_NAME, BalanceJob, build_device
from auto_balance.flows.alipay import AMOUNT_ID as ALIPAY_AMOUNT
from auto_balance.services.device import AdbDevice, UiThreadDevice
from auto_balance.services.history import STATUS_FAILURE, STATUS_STARTING, STATUS_SUCCESS
from auto_balance.services.store import LAST_UPDATE_KEY, CoordinateCache, UpdateTracker

ALL_CHANNELS = (ChannelType.ALIPAY, ChannelType.WECHAT, ChannelType.UNIONPAY)


@pytest.fixture
def make_job(fast_cfg, device, ocr, store, repository, recorder):
    def factory(**kw):
        return BalanceJob(
            fast_cfg,
            device=device,
            ocr=ocr,
            store=store,
            repository=repository,
            recorder=recorder,
            **kw,
        )

    return factory


def _statuses(repository, task_id):
    return [r["status"] for r in repository.task_logs(task_id)]


class TestBalanceJob:
    def test_success_records_task_log(self, make_job, store, repository):
        tracker = UpdateTracker(store)
        for channel in ALL_CHANNELS:
            tracker.mark_updated(channel)

        result = make_job().run(timeout=10)

        assert result.ok
        assert not result.skipped
        assert result.summary == "余额获取完毕"
        assert _statuses(repository, result.task_id) == [STATUS_STARTING, STATUS_SUCCESS]
        assert result.logs.startswith(f"[LogSession started] workId={result.task_id}")
        final = repository.task_logs(result.task_id)[-1]
        assert final["task_name"] == TASK_NAME
        assert final["logs"] == result.logs
        assert store.get(LAST_UPDATE_KEY) > 0

    def test_skips_when_chain_already_ran_today(self, make_job, store, repository, device):
        store.put(LAST_UPDATE_KEY, time.time())
        result = make_job().run()
        assert result.ok
        assert result.skipped
        assert device.launched == []
        assert _statuses(repository, result.task_id) == [STATUS_STARTING, STATUS_SUCCESS]

    def test_unstable_balance_is_failure(self, make_job, store, device, repository):
        tracker = UpdateTracker(store)
        tracker.mark_updated(ChannelType.WECHAT)
        tracker.mark_updated(ChannelType.UNIONPAY)
        CoordinateCache(store).put("alipay_wealth_tab", (10, 20))
        device.set_texts(ALIPAY_AMOUNT, [str(i) for i in range(1, 40)])

        result = make_job().run(timeout=10)

        assert not result.ok
        assert isinstance(result.error, BalanceNotStableError)
        assert "Traceback" in result.logs
        assert _statuses(repository, result.task_id) == [STATUS_STARTING, STATUS_FAILURE]
        assert repository.task_logs(result.task_id)[-1]["logs"] == result.logs

    def test_force_resets_channel_marks(self, make_job, fast_cfg, store):
        tracker = UpdateTracker(store)
        for channel in ALL_CHANNELS:
            tracker.mark_updated(channel)
            fast_cfg["channels"][channel.value]["enabled"] = False
        tracker.mark_chain_done()

        result = make_job().run(force=True, timeout=10)

        assert result.ok
        assert not result.skipped
        assert all(tracker.should_update(channel) for channel in ALL_CHANNELS)

    def test_timeout_stops_chain(self, make_job, fast_cfg, store):
        tracker = UpdateTracker(store)
        tracker.mark_updated(ChannelType.ALIPAY)
        tracker.mark_updated(ChannelType.WECHAT)
        fast_cfg["channels"]["unionpay"]["detect_interval_sec"] = 5

        job = make_job()
        result = job.run(timeout=0.2)

        assert result.status == STATUS_FAILURE
        assert isinstance(result.error, ChainAbortedError)
        assert job.stop_event.is_set()

    def test_task_log_failure_still_releases_session(self, make_job, repository, recorder, monkeypatch):
        append = repository.append_task_log

        def failing_start(task_id, task_name, status, **kwargs):
            if status == STATUS_STARTING:
                raise OSError("disk full")
            return append(task_id, task_name, status, **kwargs)

        monkeypatch.setattr(repository, "append_task_log", failing_start)

        result = make_job().run(timeout=10)

        assert result.status == STATUS_FAILURE
        assert isinstance(result.error, OSError)
        assert not recorder.active
        started = threading.Event()

        def next_session():
            recorder.start_session("next")
            started.set()
            recorder.end_session()

        threading.Thread(target=next_session, daemon=True).start()
        assert started.wait(2)

    def test_on_log_sink_is_scoped_to_run(self, make_job, store, recorder):
        tracker = UpdateTracker(store)
        for channel in ALL_CHANNELS:
            tracker.mark_updated(channel)
        previous = recorder.sink
        lines = []

        make_job(on_log=lines.append).run(timeout=10)

        assert any("开始获取余额" in line for line in lines)
        assert recorder.sink is previous

    def test_default_storage_follows_output_dir(self, fast_cfg, device, ocr, recorder):
        job = BalanceJob(fast_cfg, device=device, ocr=ocr, recorder=recorder)
        output = Path(fast_cfg["paths"]["output_dir"]).resolve()
        assert job.store.path == output / "store.json"
        assert job.repository.paths.base_dir == output


class TestBuildDevice:
    def test_adb_backend_is_wrapped(self, fast_cfg):
        device = build_device(fast_cfg)
        try:
            assert isinstance(device, UiThreadDevice)
            assert isinstance(device.inner, AdbDevice)
        finally:
            device.close()

    def test_unknown_backend(self, fast_cfg):
        fast_cfg["device"]["backend"] = "bluetooth"
        with pytest.raises(ValueError):
            build_device(fast_cfg)
