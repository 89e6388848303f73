# rvmbench/config.py
import argparse
import json
from pathlib import Path

import yaml

DEFAULT_CONFIG = {
    "image": "Lenna.png",
    "backends": ["onnx-cpu", "onnx-cuda"],
    "profiles": ["fast"],
    "custom_profiles": {},
    "iterations": 10,
    "downsample_ratio": 1.0,
    "model_dir": "./models",
    "onnx_model": "rvm_mobilenetv3_fp32.onnx",
    "torchscript_model": "rvm_mobilenetv3_fp32.torchscript",
    "output_dir": ".",
    "num_threads": None,
    "log_level": "INFO",
    "log_to_file": False,
}


def load_config(path: str = None):
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    if p.suffix.lower() in {".yml", ".yaml"}:
        return yaml.safe_load(p.read_text()) or {}
    if p.suffix.lower() == ".json":
        return json.loads(p.read_text())
    raise ValueError("Config must be .yml/.yaml or .json")


def to_dict(ns: argparse.Namespace) -> dict:
    # turn argparse Namespace into a dict (ignores None later)
    return {k: v for k, v in vars(ns).items()}


def merge_config(args: argparse.Namespace, config: dict) -> dict:
    """
    Merge defaults, file config and command-line arguments.
    Args override config values if they are not None.
    """

    merged = dict(DEFAULT_CONFIG)
    merged.update(config or {})
    for key, value in to_dict(args).items():
        if value is not None and key != "config":
            merged[key] = value
    return merged


def _size(v):
    """Parse a profile size given as ``[width, height]`` or ``"WxH"``."""
    if isinstance(v, str):
        parts = v.lower().split("x")
        if len(parts) == 2:
            return int(parts[0]), int(parts[1])
    if isinstance(v, (list, tuple)) and len(v) == 2:
        return int(v[0]), int(v[1])
    raise ValueError("profile size must be [width, height] or 'WxH'")
