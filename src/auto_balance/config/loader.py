"""
配置文件加载与写入工具。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .defaults import DEFAULT_CONFIG


@dataclass(frozen=True)
class ConfigPaths:
    """集中管理配置及数据文件路径。"""

    root: Path
    config_file: Path
    output_dir: Path
    store_file: Path
    debug_dir: Path

    @classmethod
    def from_root(cls, root: str | Path) -> "ConfigPaths":
        base = Path(root).resolve()
        return cls._build(base, base / "config.json", base / "output")

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], config_file: Optional[str | Path] = None) -> "ConfigPaths":
        """按已加载配置中的 paths.output_dir 推导数据文件路径。"""
        raw = (cfg.get("paths", {}) or {}).get("output_dir") or "output"
        output = Path(str(raw)).resolve()
        cfg_file = Path(config_file).resolve() if config_file is not None else output.parent / "config.json"
        return cls._build(cfg_file.parent, cfg_file, output)

    @classmethod
    def _build(cls, root: Path, config_file: Path, output: Path) -> "ConfigPaths":
        return cls(
            root=root,
            config_file=config_file,
            output_dir=output,
            store_file=output / "store.json",
            debug_dir=output / "debug",
        )


def deep_merge(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    """递归合并 src→dst，子字典保留引用安全。"""
    for key, value in src.items():
        if isinstance(value, dict):
            node = dst.setdefault(key, {})
            if isinstance(node, dict):
                deep_merge(node, value)
            else:
                dst[key] = value
        else:
            dst[key] = value
    return dst


def ensure_default_config(paths: ConfigPaths, *, overwrite: bool = False) -> Path:
    """若配置文件不存在则写入默认值。"""
    cfg_path = paths.config_file
    if cfg_path.exists() and not overwrite:
        return cfg_path
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    with cfg_path.open("w", encoding="utf-8") as fh:
        json.dump(DEFAULT_CONFIG, fh, ensure_ascii=False, indent=2)
    return cfg_path


def load_config(
    path: Optional[str | Path] = None,
    *,
    paths: Optional[ConfigPaths] = None,
) -> Dict[str, Any]:
    """加载配置文件并与默认值合并；文件缺失或损坏时返回默认值。"""
    cfg_path = Path(path) if path is not None else (paths.config_file if paths else Path("config.json"))
    data: Dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with cfg_path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
            if isinstance(raw, dict):
                data = raw
        except Exception:
            data = {}
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    if data:
        deep_merge(cfg, data)
    _resolve_output_dir(cfg, base_dir=cfg_path.parent)
    return cfg


def _resolve_output_dir(cfg: Dict[str, Any], *, base_dir: str | Path) -> None:
    """仅内存态把 paths.output_dir 解析为绝对路径（相对配置文件目录）。"""
    section = cfg.get("paths")
    if not isinstance(section, dict):
        return
    raw = section.get("output_dir")
    if not isinstance(raw, str) or not raw:
        return
    p = Path(raw)
    if not p.is_absolute():
        section["output_dir"] = str((Path(base_dir).resolve() / p).resolve())


def save_config(
    data: Dict[str, Any],
    *,
    path: Optional[str | Path] = None,
    indent: int = 2,
) -> Path:
    """保存配置到指定路径。"""
    cfg_path = Path(path or "config.json")
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    with cfg_path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, ensure_ascii=False, indent=indent)
    return cfg_path


__all__ = ["ConfigPaths", "deep_merge", "ensure_default_config", "load_config", "save_config"]
