FLOAT_EPSILON = 1e-4


def loose_equal(a: float, b: float, epsilon: float = FLOAT_EPSILON) -> bool:
    """Float equality within `epsilon` (strictly less than)."""
    return abs(a - b) < epsilon


def is_zero(a: float, epsilon: float = FLOAT_EPSILON) -> bool:
    return loose_equal(a, 0.0, epsilon)
