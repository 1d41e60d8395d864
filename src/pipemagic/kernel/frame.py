"""Opaque computed image results."""

import itertools
from dataclasses import dataclass
from typing import Any

# Shared by every frame created in this process so revisions never repeat
_revisions = itertools.count(1)


def next_revision() -> int:
    """Return a new, strictly increasing revision number."""
    return next(_revisions)


@dataclass(frozen=True)
class Frame:
    """A computed image.

    The engine never looks at ``pixel_handle``; ``revision`` is the only field
    it reads (folded into downstream cache keys).
    """
    pixel_handle: Any
    width: int
    height: int
    revision: int

    @classmethod
    def create(cls, pixel_handle: Any, width: int, height: int) -> "Frame":
        """Wrap pixel data in a frame with a fresh revision."""
        return cls(pixel_handle=pixel_handle, width=width, height=height, revision=next_revision())
