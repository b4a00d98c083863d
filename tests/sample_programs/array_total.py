import numpy as np


def total(a: "f64[:]") -> float:
    s = 0.0
    for v in a:
        s += v
    return s


def norm(a: "f64[:]") -> float:
    return np.sqrt(np.sum(a * a))


def make(n: int):
    x = np.zeros(3)
    return x
