"""阈值与设备配置：JSON 文件覆盖默认值"""

import json
import logging
from typing import Optional

from evaluators.drowsiness_filter import DEFAULT_CONSEC_FRAMES, DEFAULT_EAR_THRESHOLD

logger = logging.getLogger(__name__)

# consec_frames 按约 30 fps 标定，摄像头帧率不同时需按比例调整
DEFAULTS = {
    "ear_threshold": DEFAULT_EAR_THRESHOLD,
    "consec_frames": DEFAULT_CONSEC_FRAMES,
    "release_threshold": None,
    "camera_index": 0,
    "frame_width": 640,
    "frame_height": 480,
    "max_num_faces": 1,
    "min_detection_confidence": 0.5,
    "mirror": True,
    "alarm_sound": None,
}


def load_config(config_path: Optional[str] = None) -> dict:
    """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
    config = dict(DEFAULTS)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认阈值", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认阈值", config_path)
        return config

    # 用配置文件中的值覆盖默认值
    for key in DEFAULTS:
        if key in data and data[key] is not None:
            config[key] = data[key]

    validate_config(config)
    return config


def merge_config(config: dict, updates: dict) -> dict:
    """返回应用了 updates 的新配置，忽略未知字段与 null 值（release_threshold 除外）"""
    merged = dict(config)
    for key in DEFAULTS:
        if key not in updates:
            continue
        if updates[key] is None and key != "release_threshold":
            continue
        merged[key] = updates[key]
    validate_config(merged)
    return merged


def validate_config(config: dict) -> None:
    """
    校验阈值参数。

    Raises:
        ValueError: 阈值非正、帧数为负或非整数、解除阈值小于触发阈值
    """
    threshold = config["ear_threshold"]
    frames = config["consec_frames"]
    release = config.get("release_threshold")

    if not isinstance(threshold, (int, float)) or threshold <= 0:
        raise ValueError(f"ear_threshold 必须为正数: {threshold!r}")
    if isinstance(frames, bool) or not isinstance(frames, int) or frames < 0:
        raise ValueError(f"consec_frames 必须为非负整数: {frames!r}")
    if release is not None and (
        not isinstance(release, (int, float)) or release < threshold
    ):
        raise ValueError(f"release_threshold 不能小于 ear_threshold: {release!r}")
