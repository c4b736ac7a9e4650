"""驾驶员困倦监测系统入口文件（OpenCV 窗口版）"""

import argparse
import logging
import threading

import cv2

from alerts.alarm_player import AlarmPlayer
from display.renderer import DisplayRenderer
from models.data_models import SessionState
from session.config import load_config
from session.monitor import MonitoringSession

logger = logging.getLogger(__name__)

WINDOW_NAME = "Driver Sentinel"


class DetectionSystem:
    """桌面版监测系统：后台线程逐帧处理，主线程负责显示和按键。"""

    def __init__(self, config_path=None, muted=False):
        self.config = load_config(config_path)
        self.renderer = DisplayRenderer(mirror=self.config["mirror"])
        self.alarm = AlarmPlayer(self.config["alarm_sound"])

        self._lock = threading.Lock()
        self._latest_frame = None

        self.session = MonitoringSession(
            self.config,
            on_alarm=self.alarm.set_armed,
            on_frame=self._on_frame,
        )
        if muted:
            self.session.set_muted(True)

    def _on_frame(self, frame, landmarks, result):
        """调度线程回调：渲染最新一帧。"""
        rendered = self.renderer.render(frame, landmarks, result, self.session.snapshot())
        with self._lock:
            self._latest_frame = rendered

    def run(self):
        """启动监测并进入显示循环。"""
        self.session.start()
        try:
            self._main_loop()
        finally:
            self.stop()

    def _main_loop(self):
        """显示循环，按 q 退出。"""
        while True:
            cv2.imshow(WINDOW_NAME, self.current_view())

            key = cv2.waitKey(30) & 0xFF
            if key == ord("q"):
                break
            self.handle_key(key)

    def current_view(self):
        """Active 时返回最新渲染帧，其余状态返回占位画面。"""
        snapshot = self.session.snapshot()
        with self._lock:
            if snapshot.state is not SessionState.ACTIVE:
                self._latest_frame = None
            frame = self._latest_frame
        if frame is None:
            return self.renderer.render_placeholder(
                snapshot, self.config["frame_width"], self.config["frame_height"],
            )
        return frame

    def handle_key(self, key: int) -> bool:
        """
        处理按键: m 静音切换, s 启动/停止, r 失败后重试。

        Returns:
            按键是否被处理
        """
        if key == ord("m"):
            self.session.toggle_mute()
            return True
        if key == ord("s"):
            if self.session.snapshot().state is SessionState.IDLE:
                self.session.start()
            else:
                self.session.stop()
            return True
        if key == ord("r"):
            self.session.retry()
            return True
        return False

    def stop(self):
        """停止会话、关闭报警、关闭所有窗口。"""
        self.session.stop()
        self.alarm.close()
        cv2.destroyAllWindows()


def main():
    parser = argparse.ArgumentParser(description="驾驶员困倦监测系统")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 阈值配置文件路径",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    parser.add_argument(
        "--muted",
        action="store_true",
        help="以静音状态启动",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    system = DetectionSystem(config_path=args.config, muted=args.muted)
    system.run()


if __name__ == "__main__":
    main()
