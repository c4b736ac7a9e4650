"""MediaPipe FaceMesh 适配器：把一帧 BGR 图像转换为双眼 6 点关键点"""

from typing import List, Optional, Sequence

import cv2
import mediapipe as mp
import numpy as np

from models.data_models import EyeLandmarks, Point2D

# 顺序为 [外眼角, 上眼睑1, 上眼睑2, 内眼角, 下眼睑2, 下眼睑1]
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]


def select_points(points: Sequence[Point2D], indices: Sequence[int]) -> List[Point2D]:
    """按索引取关键点；超出网格范围的索引被丢弃，由 EAR 计算按损坏数据处理"""
    return [points[i] for i in indices if i < len(points)]


class FaceDetector:
    """
    检测服务。只跟踪画面中的第一张人脸，实例不可并发调用。

    关键点以像素坐标返回，和渲染帧使用同一坐标系。
    """

    def __init__(
        self,
        max_num_faces: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        self._mesh = mp.solutions.face_mesh.FaceMesh(
            max_num_faces=max_num_faces,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
            refine_landmarks=False,
        )

    def detect(self, frame: np.ndarray) -> Optional[EyeLandmarks]:
        """返回第一张人脸的双眼关键点，画面中没有人脸时返回 None"""
        height, width = frame.shape[:2]

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb.flags.writeable = False
        output = self._mesh.process(rgb)

        faces = output.multi_face_landmarks
        if not faces:
            return None

        mesh = [(lm.x * width, lm.y * height) for lm in faces[0].landmark]
        return EyeLandmarks(
            left_eye=select_points(mesh, LEFT_EYE_INDICES),
            right_eye=select_points(mesh, RIGHT_EYE_INDICES),
            all_landmarks=mesh,
        )

    def close(self):
        self._mesh.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
