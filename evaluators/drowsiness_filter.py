"""困倦判定防抖模块：把逐帧的"低 EAR"信号转换为稳定的清醒/困倦判定"""

from typing import Optional

from models.data_models import AlertVerdict, DebounceState

DEFAULT_EAR_THRESHOLD = 0.22
# 按约 30 fps 标定，超过 15 帧（约 0.5 秒）持续闭眼才触发
DEFAULT_CONSEC_FRAMES = 15


class DrowsinessFilter:
    """
    非对称迟滞滤波器。

    - 触发: 连续低于阈值的帧数严格大于 required_frames 时判定为困倦，
      只要低 EAR 帧持续，困倦判定保持不变。
    - 解除: 一帧 EAR >= 阈值立即清零计数器并恢复清醒，没有冷却期。

    可选的 release_threshold 为解除侧增加迟滞带：困倦状态下只有
    EAR >= release_threshold 才恢复清醒，位于 [threshold, release_threshold)
    的帧只清零计数器。默认为 None，即立即解除。
    """

    def __init__(
        self,
        threshold: float = DEFAULT_EAR_THRESHOLD,
        required_frames: int = DEFAULT_CONSEC_FRAMES,
        release_threshold: Optional[float] = None,
    ):
        if release_threshold is not None and release_threshold < threshold:
            raise ValueError(
                f"release_threshold ({release_threshold}) 不能小于 threshold ({threshold})"
            )
        self.threshold = threshold
        self.required_frames = required_frames
        self.release_threshold = release_threshold
        self._state = DebounceState()

    @property
    def state(self) -> DebounceState:
        """当前状态的副本"""
        return DebounceState(
            consecutive_low_frames=self._state.consecutive_low_frames,
            verdict=self._state.verdict,
        )

    @property
    def verdict(self) -> AlertVerdict:
        return self._state.verdict

    @property
    def consecutive_low_frames(self) -> int:
        return self._state.consecutive_low_frames

    def update(
        self,
        ear_avg: float,
        threshold: Optional[float] = None,
        required_frames: Optional[int] = None,
    ) -> AlertVerdict:
        """
        处理一帧平均 EAR，返回更新后的判定。

        Args:
            ear_avg: 双眼平均 EAR
            threshold: 闭眼阈值，None 时使用实例配置
            required_frames: 触发所需的连续帧数（严格大于），None 时使用实例配置

        Returns:
            AlertVerdict
        """
        if threshold is None:
            threshold = self.threshold
        if required_frames is None:
            required_frames = self.required_frames

        state = self._state
        if ear_avg < threshold:
            state.consecutive_low_frames += 1
            if state.consecutive_low_frames > required_frames:
                state.verdict = AlertVerdict.DROWSY
            return state.verdict

        state.consecutive_low_frames = 0
        if (
            state.verdict is AlertVerdict.DROWSY
            and self.release_threshold is not None
            and ear_avg < self.release_threshold
        ):
            return state.verdict

        state.verdict = AlertVerdict.ALERT
        return state.verdict

    def reset(self):
        """重置为 {0, Alert}"""
        self._state = DebounceState()
