"""Integer and float rounding helpers."""


def bucket(index: int, width: int) -> int:
    return index // width


def slot(index: int, width: int) -> int:
    return index % width


def wrap(angle: float, period: float) -> float:
    return angle % period


def in_window(x: float, lo: float, hi: float) -> bool:
    return lo <= x * 2.0 < hi
