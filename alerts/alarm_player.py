"""报警声播放：根据报警开关循环播放或停止提示音"""

import logging
from typing import Optional

import numpy as np
import pygame

logger = logging.getLogger(__name__)

_SAMPLE_RATE = 22050


def make_tone(frequency_hz: float = 880.0, duration_s: float = 0.5,
              sample_rate: int = _SAMPLE_RATE, volume: float = 0.5) -> np.ndarray:
    """
    生成一段"嘀-停"方波提示音（单声道 int16）。

    前半段为方波，后半段静音，循环播放时形成间歇报警。
    """
    n_samples = int(duration_s * sample_rate)
    t = np.arange(n_samples) / sample_rate
    wave = np.sign(np.sin(2 * np.pi * frequency_hz * t))
    wave[n_samples // 2:] = 0.0
    amplitude = int(32767 * max(0.0, min(volume, 1.0)))
    return (wave * amplitude).astype(np.int16)


class AlarmPlayer:
    """使用 pygame mixer 循环播放报警声；音频设备不可用时静默运行"""

    def __init__(self, sound_path: Optional[str] = None):
        self._armed = False
        self._sound = None
        self._channel = None

        try:
            pygame.mixer.init(frequency=_SAMPLE_RATE, size=-16, channels=1)
            if sound_path:
                self._sound = pygame.mixer.Sound(sound_path)
            else:
                self._sound = pygame.mixer.Sound(buffer=make_tone().tobytes())
        except (pygame.error, FileNotFoundError) as e:
            logger.warning("音频设备不可用，报警声已禁用: %s", e)
            self._sound = None

    @property
    def available(self) -> bool:
        return self._sound is not None

    @property
    def armed(self) -> bool:
        return self._armed

    def set_armed(self, armed: bool):
        """开启时循环播放，关闭时立即停止"""
        if armed == self._armed:
            return
        self._armed = armed
        if self._sound is None:
            return
        if armed:
            self._channel = self._sound.play(loops=-1)
        else:
            self._sound.stop()
            self._channel = None

    def close(self):
        self.set_armed(False)
        if self._sound is not None:
            pygame.mixer.quit()
            self._sound = None
