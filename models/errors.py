"""检测流程中使用的异常类型"""

from typing import Optional

from models.data_models import FailureCause


class DetectionError(Exception):
    """所有检测相关异常的基类"""


class DegenerateGeometryError(DetectionError):
    """眼角水平距离为零，无法计算 EAR"""


class CorruptLandmarkInputError(DetectionError):
    """上游关键点数据不合法（点数不为 6 或坐标非有限值）"""


class ResourceAcquisitionFailure(DetectionError):
    """摄像头或关键点检测服务获取失败"""

    def __init__(self, cause: FailureCause, message: Optional[str] = None):
        self.cause = cause
        self.message = message or cause.default_message
        super().__init__(self.message)
