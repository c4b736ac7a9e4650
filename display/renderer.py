"""界面渲染模块 - 在视频帧上绘制眼部关键点、EAR 数值、会话状态和困倦警告。"""

from typing import Optional

import cv2
import numpy as np

from models.data_models import (
    AlertVerdict,
    EyeLandmarks,
    FrameResult,
    SessionSnapshot,
    SessionState,
    SkipReason,
)

_GREEN = (0, 255, 0)
_RED = (0, 0, 255)
_CYAN = (255, 255, 0)
_GRAY = (160, 160, 160)


def format_value(v: float) -> str:
    """格式化浮点数为两位小数字符串。"""
    return f"{v:.2f}"


def status_key(snapshot: SessionSnapshot) -> str:
    """根据会话状态确定状态键：danger / secure / offline。"""
    if snapshot.state is SessionState.ACTIVE:
        if snapshot.verdict is AlertVerdict.DROWSY:
            return "danger"
        return "secure"
    return "offline"


class DisplayRenderer:
    """在视频帧上绘制检测结果、会话状态和困倦警告。"""

    # 状态文字映射
    _STATUS_TEXT = {
        "secure": "安全",
        "danger": "危险",
        "offline": "离线",
    }

    _STATUS_TEXT_EN = {
        "secure": "SECURE",
        "danger": "DANGER",
        "offline": "OFFLINE",
    }

    def __init__(self, font_path: str = "SimHei", mirror: bool = True):
        """初始化中文字体，字体不存在时回退到 OpenCV 默认英文字体。"""
        self.mirror = mirror
        self._pil_font = None
        self._pil_font_large = None
        self._use_pil = False

        try:
            from PIL import ImageFont

            font = self._try_load_font(font_path)
            if font is not None:
                self._pil_font = font
                self._pil_font_large = ImageFont.truetype(font.path, 64)
                self._use_pil = True
        except (ImportError, OSError, AttributeError):
            self._use_pil = False

    @staticmethod
    def _try_load_font(font_path: str):
        """尝试加载字体文件，返回 PIL ImageFont 或 None。"""
        from PIL import ImageFont

        try:
            return ImageFont.truetype(font_path, 20)
        except (OSError, IOError):
            pass

        # 常见系统路径
        common_paths = [
            "/usr/share/fonts/truetype/simhei/SimHei.ttf",
            "/usr/share/fonts/SimHei.ttf",
            "C:\\Windows\\Fonts\\simhei.ttf",
            "/System/Library/Fonts/STHeiti Medium.ttc",
        ]
        for path in common_paths:
            try:
                return ImageFont.truetype(path, 20)
            except (OSError, IOError):
                continue

        return None

    def render(
        self,
        frame: np.ndarray,
        landmarks: Optional[EyeLandmarks],
        result: Optional[FrameResult],
        snapshot: SessionSnapshot,
    ) -> np.ndarray:
        """渲染检测结果到视频帧，返回渲染后的帧图像。"""
        output = cv2.flip(frame, 1) if self.mirror else frame.copy()

        if landmarks is not None:
            is_closed = result is not None and result.eye is not None and result.eye.is_closed
            self._draw_eyes(output, landmarks, _RED if is_closed else _GREEN)

        key = status_key(snapshot)
        self._draw_info(output, result, key)
        self._draw_mute(output, snapshot.muted)

        if key == "danger":
            self._draw_drowsy_warning(output)

        return output

    def _draw_eyes(self, frame: np.ndarray, landmarks: EyeLandmarks, color: tuple) -> None:
        """绘制双眼 12 个关键点，镜像模式下同步翻转 x 坐标。"""
        w = frame.shape[1]
        for x, y in list(landmarks.left_eye) + list(landmarks.right_eye):
            px = w - x if self.mirror else x
            cv2.circle(frame, (int(px), int(y)), 2, color, -1)

    def _draw_info(self, frame: np.ndarray, result: Optional[FrameResult], key: str) -> None:
        """在左上角绘制 EAR 数值和状态文字。"""
        if result is not None and result.eye is not None:
            ear_text = f"EAR: {format_value(result.eye.ear)}"
        else:
            ear_text = "EAR: --"
        no_face = result is not None and result.skipped is SkipReason.NO_FACE
        color = _RED if key == "danger" else (_GREEN if key == "secure" else _GRAY)

        if self._use_pil:
            lines = [ear_text, f"状态: {self._STATUS_TEXT[key]}"]
            if no_face:
                lines.append("未检测到人脸")
            self._draw_pil_lines(frame, lines, x=10, y_start=30, color=color)
        else:
            # 英文回退
            lines = [ear_text, f"Status: {self._STATUS_TEXT_EN[key]}"]
            if no_face:
                lines.append("No face")
            y = 30
            for text in lines:
                cv2.putText(
                    frame, text, (10, y),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2,
                )
                y += 30

    def _draw_mute(self, frame: np.ndarray, muted: bool) -> None:
        """在右上角绘制静音状态。"""
        w = frame.shape[1]

        if self._use_pil:
            text = "静音" if muted else "声音: 开"
            self._draw_pil_lines(frame, [text], x=w - 120, y_start=30, color=_CYAN)
        else:
            text = "Muted" if muted else "Sound: On"
            cv2.putText(
                frame, text, (w - 150, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.7, _CYAN, 2,
            )

    def _draw_drowsy_warning(self, frame: np.ndarray) -> None:
        """红色边框加画面中央大字警告。"""
        h, w = frame.shape[:2]
        cv2.rectangle(frame, (0, 0), (w - 1, h - 1), _RED, 16)

        if self._use_pil:
            from PIL import Image, ImageDraw

            warning = "醒醒！"
            img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            draw = ImageDraw.Draw(img_pil)
            bbox = draw.textbbox((0, 0), warning, font=self._pil_font_large)
            text_w = bbox[2] - bbox[0]
            text_h = bbox[3] - bbox[1]
            x = (w - text_w) // 2
            y = (h - text_h) // 2
            draw.text((x, y), warning, font=self._pil_font_large, fill=(255, 0, 0))
            frame[:] = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)
        else:
            warning_en = "WAKE UP!"
            font_scale = 2.0
            thickness = 4
            (text_w, text_h), _ = cv2.getTextSize(
                warning_en, cv2.FONT_HERSHEY_SIMPLEX, font_scale, thickness
            )
            x = (w - text_w) // 2
            y = (h + text_h) // 2
            cv2.putText(
                frame, warning_en, (x, y),
                cv2.FONT_HERSHEY_SIMPLEX, font_scale, _RED, thickness,
            )

    def _draw_pil_lines(
        self,
        frame: np.ndarray,
        lines: list,
        x: int,
        y_start: int,
        color: tuple,
    ) -> None:
        """使用 PIL 在帧上绘制多行文字（BGR color -> RGB fill）。"""
        from PIL import Image, ImageDraw

        img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
        draw = ImageDraw.Draw(img_pil)
        # BGR -> RGB for PIL fill
        fill = (color[2], color[1], color[0])
        y = y_start
        for line in lines:
            draw.text((x, y), line, font=self._pil_font, fill=fill)
            y += 28
        frame[:] = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)

    def render_placeholder(self, snapshot: SessionSnapshot, width: int = 640, height: int = 480) -> np.ndarray:
        """会话未运行时的占位画面，Error 状态下显示失败原因。"""
        frame = np.zeros((height, width, 3), dtype=np.uint8)
        if snapshot.state is SessionState.ERROR and snapshot.error is not None:
            if self._use_pil:
                self._draw_pil_lines(
                    frame, ["初始化失败", snapshot.error.message, "按 r 重试"],
                    x=20, y_start=height // 2 - 40, color=_RED,
                )
            else:
                cv2.putText(
                    frame, f"Init failed: {snapshot.error.cause.value}",
                    (20, height // 2), cv2.FONT_HERSHEY_SIMPLEX, 0.7, _RED, 2,
                )
                cv2.putText(
                    frame, "Press r to retry", (20, height // 2 + 35),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, _RED, 2,
                )
            return frame

        text = {
            SessionState.IDLE: "Press s to start monitoring",
            SessionState.LOADING: "Loading...",
        }.get(snapshot.state, "")
        cv2.putText(
            frame, text, (20, height // 2),
            cv2.FONT_HERSHEY_SIMPLEX, 0.8, _GRAY, 2,
        )
        return frame
