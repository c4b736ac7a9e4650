"""监测会话状态机：Idle -> Loading -> Active -> Idle | Error，附带独立的静音标志"""

import logging
import threading
from typing import Callable, List, Optional, Tuple

from evaluators.drowsiness_filter import DrowsinessFilter
from models.data_models import (
    AlertVerdict,
    DebounceState,
    FailureCause,
    SessionError,
    SessionSnapshot,
    SessionState,
)
from models.errors import ResourceAcquisitionFailure

logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], None]


class SessionStateMachine:
    """
    管理一次次监测会话的生命周期，并把困倦判定映射为报警输出。

    外部协作者通过回调注入:
        on_acquire(machine): 进入 Loading 时请求摄像头与检测服务，
            就绪后调用 video_ready() / detector_ready()，失败时调用
            resource_failure() 或直接抛出 ResourceAcquisitionFailure
        on_release(): 离开 Loading/Active 时释放摄像头与检测服务
        on_activate(): 进入 Active 时启动逐帧调度，返回带 cancel() 的句柄
        on_alarm(armed): 报警开关变化时调用

    所有回调都在内部锁之外执行，回调中可以安全地再次调用本状态机。
    """

    def __init__(
        self,
        filter_factory: Optional[Callable[[], DrowsinessFilter]] = None,
        on_acquire: Optional[Callable[["SessionStateMachine"], None]] = None,
        on_release: Optional[Callable[[], None]] = None,
        on_activate: Optional[Callable[[], object]] = None,
        on_alarm: Optional[Callable[[bool], None]] = None,
        muted: bool = False,
    ):
        self._filter_factory = filter_factory or DrowsinessFilter
        self._on_acquire = on_acquire
        self._on_release = on_release
        self._on_activate = on_activate
        self._on_alarm = on_alarm

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

        self._state = SessionState.IDLE
        self._muted = muted
        self._verdict = AlertVerdict.ALERT
        self._alarm_armed = False
        self._error: Optional[SessionError] = None
        self._video_ready = False
        self._detector_ready = False
        self._debounce: Optional[DrowsinessFilter] = None
        self._tick_handle = None

    # ---- 只读状态 ----

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def verdict(self) -> AlertVerdict:
        return self._verdict

    @property
    def alarm_armed(self) -> bool:
        return self._alarm_armed

    @property
    def error(self) -> Optional[SessionError]:
        return self._error

    @property
    def debounce(self) -> Optional[DrowsinessFilter]:
        """当前会话的防抖滤波器，仅在 Active 状态下存在"""
        return self._debounce

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册状态变化回调，返回取消注册函数"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ---- 生命周期事件 ----

    def start(self) -> bool:
        """Idle -> Loading，请求获取资源"""
        return self._begin_loading(SessionState.IDLE, "start")

    def retry(self) -> bool:
        """Error -> Loading，与 start 相同的重新尝试"""
        return self._begin_loading(SessionState.ERROR, "retry")

    def video_ready(self) -> bool:
        """视频源就绪信号"""
        return self._resource_ready("video")

    def detector_ready(self) -> bool:
        """关键点检测服务就绪信号"""
        return self._resource_ready("detector")

    def resource_failure(self, cause: FailureCause, message: Optional[str] = None) -> bool:
        """Loading -> Error，记录失败原因并释放已获取的资源"""
        with self._lock:
            if self._state is not SessionState.LOADING:
                logger.debug("忽略 %s 状态下的资源失败信号: %s", self._state.value, cause.value)
                return False
            self._error = SessionError(cause=cause, message=message or cause.default_message)
            self._state = SessionState.ERROR
            self._reset_ready_flags()
            snapshot = self._snapshot()

        logger.error("资源获取失败 (%s): %s", cause.value, snapshot.error.message)
        self._release()
        self._notify(snapshot)
        return True

    def stop(self) -> bool:
        """Active/Loading -> Idle；已停止时为空操作"""
        with self._lock:
            if self._state not in (SessionState.ACTIVE, SessionState.LOADING):
                return False
            handle = self._tick_handle
            self._tick_handle = None
            self._debounce = None
            self._verdict = AlertVerdict.ALERT
            self._state = SessionState.IDLE
            self._reset_ready_flags()
            alarm_changed = self._refresh_alarm()
            snapshot = self._snapshot()

        if handle is not None:
            handle.cancel()
        self._release()
        if alarm_changed:
            self._emit_alarm(snapshot.alarm_armed)
        logger.info("监测已停止")
        self._notify(snapshot)
        return True

    def record_verdict(self, verdict: AlertVerdict) -> bool:
        """记录一帧的判定结果，仅在 Active 状态下生效"""
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return False
            changes = self._set_verdict(verdict)
        self._publish(*changes)
        return True

    def feed_ear(self, ear: float) -> Optional[Tuple[DebounceState, float]]:
        """
        把一帧平均 EAR 送入当前滤波器并记录判定，两步在同一把锁内完成。

        Returns:
            (更新后的防抖状态, 使用的阈值)；非 Active 状态下返回 None
        """
        with self._lock:
            debounce = self._debounce
            if self._state is not SessionState.ACTIVE or debounce is None:
                return None
            verdict = debounce.update(ear)
            outcome = (debounce.state, debounce.threshold)
            changes = self._set_verdict(verdict)
        self._publish(*changes)
        return outcome

    def reconfigure(self) -> bool:
        """用 filter_factory 重建 Active 会话的滤波器，判定回到 Alert"""
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return False
            self._debounce = self._filter_factory()
            changes = self._set_verdict(AlertVerdict.ALERT)
        self._publish(*changes)
        return True

    def set_muted(self, muted: bool) -> bool:
        """设置静音，只影响报警输出，不影响判定"""
        return self._apply_mute(lambda current: bool(muted)) is not None

    def toggle_mute(self) -> bool:
        """切换静音，返回切换后的静音状态"""
        self._apply_mute(lambda current: not current)
        return self._muted

    # ---- 内部实现 ----

    def _begin_loading(self, expected: SessionState, trigger: str) -> bool:
        with self._lock:
            if self._state is not expected:
                logger.debug("忽略 %s 状态下的 %s 请求", self._state.value, trigger)
                return False
            self._state = SessionState.LOADING
            self._error = None
            self._reset_ready_flags()
            snapshot = self._snapshot()

        logger.info("开始获取摄像头与检测服务 (%s)", trigger)
        self._notify(snapshot)

        if self._on_acquire is not None:
            try:
                self._on_acquire(self)
            except ResourceAcquisitionFailure as e:
                self.resource_failure(e.cause, e.message)
        return True

    def _resource_ready(self, name: str) -> bool:
        with self._lock:
            if self._state is not SessionState.LOADING:
                logger.debug("忽略 %s 状态下的 %s 就绪信号", self._state.value, name)
                return False
            if name == "video":
                self._video_ready = True
            else:
                self._detector_ready = True
            if not (self._video_ready and self._detector_ready):
                return True
            self._state = SessionState.ACTIVE
            self._debounce = self._filter_factory()
            self._verdict = AlertVerdict.ALERT
            snapshot = self._snapshot()

        logger.info("监测已启动")
        handle = self._on_activate() if self._on_activate is not None else None

        with self._lock:
            still_active = self._state is SessionState.ACTIVE
            if still_active:
                self._tick_handle = handle
        if not still_active and handle is not None:
            # 启动调度期间会话已被停止
            handle.cancel()
            return True

        self._notify(snapshot)
        return True

    def _apply_mute(self, decide: Callable[[bool], bool]) -> Optional[SessionSnapshot]:
        with self._lock:
            target = decide(self._muted)
            if target == self._muted:
                return None
            self._muted = target
            alarm_changed = self._refresh_alarm()
            snapshot = self._snapshot()

        logger.info("静音: %s", "开" if snapshot.muted else "关")
        if alarm_changed:
            self._emit_alarm(snapshot.alarm_armed)
        self._notify(snapshot)
        return snapshot

    def _reset_ready_flags(self):
        self._video_ready = False
        self._detector_ready = False

    def _set_verdict(self, verdict: AlertVerdict):
        verdict_changed = verdict is not self._verdict
        self._verdict = verdict
        alarm_changed = self._refresh_alarm()
        return verdict_changed, alarm_changed, self._snapshot()

    def _publish(self, verdict_changed: bool, alarm_changed: bool, snapshot: SessionSnapshot):
        if verdict_changed:
            logger.info("判定变化: %s", snapshot.verdict.value)
        if alarm_changed:
            self._emit_alarm(snapshot.alarm_armed)
        if verdict_changed or alarm_changed:
            self._notify(snapshot)

    def _refresh_alarm(self) -> bool:
        armed = (
            self._state is SessionState.ACTIVE
            and self._verdict is AlertVerdict.DROWSY
            and not self._muted
        )
        if armed == self._alarm_armed:
            return False
        self._alarm_armed = armed
        return True

    def _emit_alarm(self, armed: bool):
        logger.info("报警%s", "开启" if armed else "关闭")
        if self._on_alarm is not None:
            self._on_alarm(armed)

    def _release(self):
        if self._on_release is not None:
            self._on_release()

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            muted=self._muted,
            verdict=self._verdict,
            alarm_armed=self._alarm_armed,
            error=self._error,
        )

    def _notify(self, snapshot: SessionSnapshot):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)
