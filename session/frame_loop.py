"""逐帧处理：关键点 -> EAR -> 防抖 -> 会话状态机"""

import logging
from typing import Callable, Optional

import numpy as np

from detectors.eye_analyzer import compute_average_ear
from models.data_models import EyeLandmarks, EyeResult, FrameResult, SkipReason
from models.errors import CorruptLandmarkInputError, DegenerateGeometryError
from session.state_machine import SessionStateMachine

logger = logging.getLogger(__name__)

FrameCallback = Callable[[np.ndarray, Optional[EyeLandmarks], FrameResult], None]


class FrameLoop:
    """
    协调一次 tick 的全部计算。

    摄像头和检测器在会话进入 Active 之前通过 attach() 挂载，离开时 detach()。
    无人脸、关键点损坏或几何退化的帧都被跳过，不改变防抖状态。
    """

    def __init__(
        self,
        machine: SessionStateMachine,
        on_frame: Optional[FrameCallback] = None,
    ):
        self.machine = machine
        self.on_frame = on_frame
        self._camera = None
        self._detector = None
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def attach(self, camera, detector):
        self._camera = camera
        self._detector = detector

    def detach(self):
        self._camera = None
        self._detector = None

    def tick(self) -> Optional[FrameResult]:
        """
        读取一帧并处理。

        Returns:
            FrameResult；没有可用帧或上一帧仍在处理时返回 None
        """
        if self._in_flight:
            logger.debug("上一帧仍在处理，忽略本次 tick")
            return None

        camera, detector = self._camera, self._detector
        if camera is None or detector is None:
            return None

        self._in_flight = True
        try:
            frame = camera.read()
            if frame is None:
                return None

            landmarks = detector.detect(frame)
            result = self.process(landmarks)

            if self.on_frame is not None:
                self.on_frame(frame, landmarks, result)
            return result
        finally:
            self._in_flight = False

    def process(self, landmarks: Optional[EyeLandmarks]) -> FrameResult:
        """把一帧关键点送入 EAR 计算和防抖滤波器，并把判定交给状态机"""
        if landmarks is None:
            logger.debug("未检测到人脸，跳过本帧")
            return FrameResult(skipped=SkipReason.NO_FACE)

        try:
            ear = compute_average_ear(landmarks.left_eye, landmarks.right_eye)
        except CorruptLandmarkInputError as e:
            logger.warning("关键点数据异常，跳过本帧: %s", e)
            return FrameResult(skipped=SkipReason.CORRUPT_INPUT)
        except DegenerateGeometryError:
            logger.debug("眼部几何退化，跳过本帧")
            return FrameResult(skipped=SkipReason.DEGENERATE_GEOMETRY)

        outcome = self.machine.feed_ear(ear)
        if outcome is None:
            return FrameResult(skipped=SkipReason.INACTIVE)

        state, threshold = outcome
        return FrameResult(
            eye=EyeResult(
                ear=ear,
                is_closed=ear < threshold,
                verdict=state.verdict,
                frame_count=state.consecutive_low_frames,
            ),
        )
