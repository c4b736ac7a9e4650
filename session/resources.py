"""摄像头与关键点检测服务的获取和释放"""

import logging
import os
import sys
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from detectors.face_detector import FaceDetector
from models.data_models import FailureCause
from models.errors import ResourceAcquisitionFailure

logger = logging.getLogger(__name__)


class CameraSource:
    """OpenCV 摄像头封装"""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480):
        self.index = index
        self.width = width
        self.height = height
        self._cap = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self):
        """
        打开摄像头。

        Raises:
            ResourceAcquisitionFailure: 无权限或设备不可用
        """
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            cause = _classify_camera_failure(self.index)
            raise ResourceAcquisitionFailure(cause)

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        logger.info("摄像头 %d 已打开", self.index)

    def read(self) -> Optional[np.ndarray]:
        """读取一帧，失败时返回 None"""
        if self._cap is None:
            return None
        ret, frame = self._cap.read()
        if not ret:
            return None
        return frame

    def release(self):
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        self._cap = None


def _classify_camera_failure(index: int) -> FailureCause:
    """Linux 下设备节点存在但不可读视为权限问题，其余情况视为设备不可用"""
    if sys.platform.startswith("linux"):
        device = f"/dev/video{index}"
        if os.path.exists(device) and not os.access(device, os.R_OK):
            return FailureCause.PERMISSION_DENIED
    return FailureCause.CAMERA_UNAVAILABLE


def open_camera(config: dict) -> CameraSource:
    camera = CameraSource(
        index=config["camera_index"],
        width=config["frame_width"],
        height=config["frame_height"],
    )
    camera.open()
    return camera


def create_detector(config: dict) -> FaceDetector:
    """
    初始化关键点检测服务。

    Raises:
        ResourceAcquisitionFailure: MediaPipe 初始化失败
    """
    try:
        return FaceDetector(
            max_num_faces=config["max_num_faces"],
            min_detection_confidence=config["min_detection_confidence"],
        )
    except (RuntimeError, ValueError, OSError) as e:
        raise ResourceAcquisitionFailure(
            FailureCause.DETECTOR_INIT_FAILED,
            f"{FailureCause.DETECTOR_INIT_FAILED.default_message}: {e}",
        ) from e


def acquire_resources(
    config: dict,
    camera_factory: Callable[[dict], CameraSource] = open_camera,
    detector_factory: Callable[[dict], FaceDetector] = create_detector,
) -> Tuple[CameraSource, FaceDetector]:
    """
    依次获取摄像头和检测服务；检测服务失败时释放已打开的摄像头。

    Raises:
        ResourceAcquisitionFailure
    """
    camera = camera_factory(config)
    try:
        detector = detector_factory(config)
    except ResourceAcquisitionFailure:
        camera.release()
        raise
    return camera, detector
