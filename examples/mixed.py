"""One function per verdict.

    wpcheck verify examples/mixed.py -v
"""

from wpcheck import invariant, old, post, pre


def clamp(x: int, lo: int, hi: int) -> int:
    """Verified.

    Requires: lo <= hi
    Ensures: lo <= result <= hi
    """
    if x < lo:
        return lo
    if x > hi:
        return hi
    return x


def countdown(n: int) -> int:
    # Falsified: the invariant is off by one, so it is not preserved
    pre(n >= 0)
    k = n
    invariant(k >= 1)
    while k > 0:
        k = k - 1
    post("result == 0")
    return k


def parity(x: int) -> int:
    # Inconclusive: bitwise and has no integer encoding
    post("result == (x & 1)")
    return x % 2


def shift(x: int, d: int) -> int:
    # Verified: old() refers to the value on entry
    pre(d > 0)
    x = x + d
    post("result > old(x)")
    return x


def average(a: int, b: int) -> int:
    # Error: true division is outside the integer model
    pre(a >= 0 and b >= 0)
    return (a + b) / 2


def spin(n: int) -> int:
    # Error: loop without an invariant
    pre(n >= 0)
    while n > 0:
        n = n - 1
    return n
