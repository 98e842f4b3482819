from __future__ import annotations

from typing import Optional

from .models import Locus


class UserInputError(ValueError):
    """Raised when user-provided inputs contradict the data at a site.

    The error is scoped to a single site; callers iterating over a region can catch
    it and continue with the next site.
    """

    def __init__(self, message: str, *, locus: Optional[Locus] = None) -> None:
        if locus is not None:
            message = f"{message} (at {locus})"
        super().__init__(message)
        self.locus = locus
