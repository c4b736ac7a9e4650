"""眼睛状态分析模块，负责校验眼部关键点并计算 EAR 值"""

import math

from detectors.geometry import distance
from models.data_models import EyeLandmarkSet
from models.errors import CorruptLandmarkInputError, DegenerateGeometryError

EYE_POINT_COUNT = 6


def validate_eye(eye_points: EyeLandmarkSet) -> None:
    """
    校验单眼关键点是否满足 EAR 计算要求。

    Raises:
        CorruptLandmarkInputError: 点数不为 6，坐标不是数值二元组，或存在非有限坐标
    """
    try:
        count = 0 if eye_points is None else len(eye_points)
    except TypeError as e:
        raise CorruptLandmarkInputError(f"眼部关键点不是序列: {eye_points!r}") from e
    if count != EYE_POINT_COUNT:
        raise CorruptLandmarkInputError(
            f"眼部关键点数量应为 {EYE_POINT_COUNT}，实际为 {count}"
        )

    for point in eye_points:
        try:
            if len(point) != 2:
                raise CorruptLandmarkInputError(f"关键点维度错误: {point!r}")
            x, y = point
            finite = math.isfinite(x) and math.isfinite(y)
        except TypeError as e:
            raise CorruptLandmarkInputError(f"关键点类型错误: {point!r}") from e
        if not finite:
            raise CorruptLandmarkInputError(f"关键点坐标非有限值: {point!r}")


def compute_ear(eye_points: EyeLandmarkSet) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

    Returns:
        EAR 值（非负）

    Raises:
        CorruptLandmarkInputError: 关键点不合法
        DegenerateGeometryError: 两眼角重合，或比值不是有限值
    """
    validate_eye(eye_points)
    p1, p2, p3, p4, p5, p6 = eye_points

    vertical_1 = distance(p2, p6)
    vertical_2 = distance(p3, p5)
    horizontal = distance(p1, p4)

    if horizontal == 0.0:
        raise DegenerateGeometryError("眼角水平距离为零")

    # 水平距离过小或坐标差溢出时比值不再有限
    ear = (vertical_1 + vertical_2) / (2.0 * horizontal)
    if not math.isfinite(ear):
        raise DegenerateGeometryError(f"EAR 非有限值: {ear}")
    return ear


def compute_average_ear(left_eye: EyeLandmarkSet, right_eye: EyeLandmarkSet) -> float:
    """双眼 EAR 平均值；任一只眼失败则整帧失败，不使用单眼结果"""
    left_ear = compute_ear(left_eye)
    right_ear = compute_ear(right_eye)
    average = (left_ear + right_ear) / 2.0
    if not math.isfinite(average):
        raise DegenerateGeometryError(f"双眼 EAR 平均值非有限值: {average}")
    return average
