"""把状态机、逐帧处理、调度与外部资源组装成一个可运行的监测会话"""

import logging
from typing import Callable, Optional

from evaluators.drowsiness_filter import DrowsinessFilter
from models.data_models import SessionSnapshot
from session.config import DEFAULTS, merge_config, validate_config
from session.frame_loop import FrameCallback, FrameLoop
from session.resources import acquire_resources, create_detector, open_camera
from session.scheduler import ThreadTicker
from session.state_machine import SessionStateMachine

logger = logging.getLogger(__name__)


class MonitoringSession:
    """监测系统门面，供命令行与 Web 前端共用"""

    def __init__(
        self,
        config: Optional[dict] = None,
        on_alarm: Optional[Callable[[bool], None]] = None,
        on_frame: Optional[FrameCallback] = None,
        camera_factory=open_camera,
        detector_factory=create_detector,
        ticker_factory=ThreadTicker,
    ):
        self.config = dict(DEFAULTS)
        if config:
            self.config.update(config)
        validate_config(self.config)

        self._camera_factory = camera_factory
        self._detector_factory = detector_factory
        self._camera = None
        self._detector = None

        self.machine = SessionStateMachine(
            filter_factory=self._make_filter,
            on_acquire=self._acquire,
            on_release=self._release,
            on_activate=self._activate,
            on_alarm=on_alarm,
        )
        self.loop = FrameLoop(self.machine, on_frame=on_frame)
        self._ticker = ticker_factory(self.loop.tick)

    # ---- 对外操作 ----

    def start(self) -> bool:
        return self.machine.start()

    def retry(self) -> bool:
        return self.machine.retry()

    def stop(self) -> bool:
        return self.machine.stop()

    def toggle_mute(self) -> bool:
        return self.machine.toggle_mute()

    def set_muted(self, muted: bool) -> bool:
        return self.machine.set_muted(muted)

    def snapshot(self) -> SessionSnapshot:
        return self.machine.snapshot()

    def update_config(self, updates: dict) -> dict:
        """
        动态更新阈值配置。Active 会话按新配置重建滤波器，判定回到 Alert。

        Raises:
            ValueError: 新配置不合法
        """
        self.config = merge_config(self.config, updates)
        self.machine.reconfigure()
        logger.info(
            "配置已更新: ear_threshold=%.3f, consec_frames=%d",
            self.config["ear_threshold"], self.config["consec_frames"],
        )
        return dict(self.config)

    # ---- 状态机回调 ----

    def _make_filter(self) -> DrowsinessFilter:
        return DrowsinessFilter(
            threshold=self.config["ear_threshold"],
            required_frames=self.config["consec_frames"],
            release_threshold=self.config["release_threshold"],
        )

    def _acquire(self, machine: SessionStateMachine):
        camera, detector = acquire_resources(
            self.config,
            camera_factory=self._camera_factory,
            detector_factory=self._detector_factory,
        )
        self._camera = camera
        self._detector = detector
        self.loop.attach(camera, detector)
        machine.video_ready()
        machine.detector_ready()

    def _release(self):
        self.loop.detach()
        if self._detector is not None:
            self._detector.close()
            self._detector = None
        if self._camera is not None:
            self._camera.release()
            self._camera = None

    def _activate(self):
        return self._ticker.start()
