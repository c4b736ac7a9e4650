"""二维点集距离计算"""

import math

from models.data_models import Point2D


def distance(p1: Point2D, p2: Point2D) -> float:
    """两点间欧氏距离"""
    return math.dist(p1, p2)
