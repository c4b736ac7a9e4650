"""核心数据模型定义"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

# 单个关键点 (x, y)，归一化坐标或像素坐标均可，但双眼必须一致
Point2D = Tuple[float, float]

# 单眼 6 个关键点，顺序固定:
# [外眼角, 上眼睑1, 上眼睑2, 内眼角, 下眼睑2, 下眼睑1]
EyeLandmarkSet = Sequence[Point2D]


class AlertVerdict(str, Enum):
    """防抖滤波器输出的清醒判定"""
    ALERT = "alert"
    DROWSY = "drowsy"


class SessionState(str, Enum):
    """监测会话生命周期状态"""
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    ERROR = "error"


class FailureCause(str, Enum):
    """资源获取失败原因分类"""
    PERMISSION_DENIED = "permission_denied"
    CAMERA_UNAVAILABLE = "camera_unavailable"
    DETECTOR_INIT_FAILED = "detector_init_failed"

    @property
    def default_message(self) -> str:
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES = {
    FailureCause.PERMISSION_DENIED: "摄像头权限被拒绝，请检查系统隐私设置",
    FailureCause.CAMERA_UNAVAILABLE: "无法打开摄像头，请确认设备已连接",
    FailureCause.DETECTOR_INIT_FAILED: "人脸关键点模型初始化失败",
}


class SkipReason(str, Enum):
    """帧被跳过（不更新防抖状态）的原因"""
    NO_FACE = "no_face"
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    CORRUPT_INPUT = "corrupt_input"
    INACTIVE = "inactive"


@dataclass
class DebounceState:
    """防抖滤波器内部状态"""
    consecutive_low_frames: int = 0
    verdict: AlertVerdict = AlertVerdict.ALERT


@dataclass
class EyeLandmarks:
    """人脸关键点检测结果（仅保留 EAR 所需部分）"""
    left_eye: List[Point2D]
    right_eye: List[Point2D]
    all_landmarks: List[Point2D] = field(default_factory=list)


@dataclass
class EyeResult:
    """单帧眼睛分析结果"""
    ear: float
    is_closed: bool
    verdict: AlertVerdict
    frame_count: int


@dataclass
class FrameResult:
    """单帧处理结果，eye 与 skipped 二者只有一个非空"""
    eye: Optional[EyeResult] = None
    skipped: Optional[SkipReason] = None

    @property
    def is_skipped(self) -> bool:
        return self.skipped is not None


@dataclass
class SessionError:
    """Error 状态携带的失败原因"""
    cause: FailureCause
    message: str


@dataclass
class SessionSnapshot:
    """供展示层读取的只读会话状态"""
    state: SessionState
    muted: bool
    verdict: AlertVerdict
    alarm_armed: bool
    error: Optional[SessionError] = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "muted": self.muted,
            "verdict": self.verdict.value,
            "is_drowsy": self.verdict is AlertVerdict.DROWSY,
            "alarm_armed": self.alarm_armed,
            "error_cause": self.error.cause.value if self.error else None,
            "error_message": self.error.message if self.error else None,
        }
