"""Gauss sum: every verification condition holds.

    wpcheck verify examples/sum_first_n.py --dot
"""

from wpcheck import invariant, post, pre


def sum_first_n(n: int) -> int:
    pre(n >= 0)
    i = 1
    total = 0
    invariant(i <= n + 1 and total == (i - 1) * i // 2)
    while i <= n:
        total = total + i
        i = i + 1
    post("result == n * (n + 1) // 2")
    return total


if __name__ == "__main__":
    print(sum_first_n(10))
