"""
默认配置定义。

集中维护应用初始配置，便于在其它模块中按需导入。
"""

from __future__ import annotations

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    "device": {
        # adb | mirror（投屏窗口 + PyAutoGUI）
        "backend": "adb",
        "adb_path": "adb",
        "serial": "",
        "command_timeout_sec": 15,
        # mirror 后端：桌面上投屏窗口区域 [left, top, width, height] 与设备分辨率 [w, h]
        "mirror_region": [],
        "screen_size": [],
    },
    "umi_ocr": {
        "base_url": "http://127.0.0.1:1224",
        "timeout_sec": 2.5,
        "options": {
            "data.format": "dict",
        },
    },
    "paths": {
        "output_dir": "output",
    },
    "automation": {
        "click_jitter": [4, 4],
        "verify_attempts": 3,
        "verify_settle_sec": 0.8,
        "verify_half_size": [40, 40],
        "sample_delay_sec": 1.0,
        "max_samples": 5,
        "retry_delay_sec": 2.0,
        "max_step_repeats": 20,
        "job_timeout_sec": 600,
    },
    "channels": {
        "alipay": {
            "enabled": True,
            "package": "com.eg.android.AlipayGphone",
            "launch_settle_sec": 1.5,
            "balance_attempts": 3,
        },
        "wechat": {
            "enabled": True,
            "package": "com.tencent.mm",
            "launch_settle_sec": 2.0,
            "nav_settle_sec": 1.0,
            "row_attempts": 3,
            "row_retry_delay_sec": 3.0,
        },
        "unionpay": {
            "enabled": True,
            "package": "com.unionpay",
            "launch_settle_sec": 1.5,
            "detect_polls": 5,
            "detect_interval_sec": 1.0,
            "balance_attempts": 5,
        },
    },
    # 完成后切回的应用包名，留空则不切换
    "return_package": "",
    "debug": {
        # 是否保存分割中间图（灰度/二值/膨胀）到 output/debug
        "save_intermediates": False,
    },
    "log_level": "info",
}

__all__ = ["DEFAULT_CONFIG"]
