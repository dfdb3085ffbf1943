from __future__ import annotations


class PreconditionError(ValueError):
    """Raised for programmer errors: bad shapes, dtypes or argument combinations."""


def require(cond: bool, msg: str) -> None:
    if not cond:
        raise PreconditionError(msg)
