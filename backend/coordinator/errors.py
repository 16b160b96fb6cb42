from __future__ import annotations

from typing import Literal

FeedSource = Literal["markers", "polygons"]


class LoadFailure(RuntimeError):
    """
    One of the two input feeds failed to load.

    The coordinator keeps its current flags and does not retry.
    """

    def __init__(self, source: FeedSource, cause: BaseException):
        super().__init__(f"Failed to load {source}: {cause}")
        self.source = source
        self.cause = cause


class PolygonsAlreadyLoaded(RuntimeError):
    """Polygons load once per map instance; reloading means a new instance."""


class CoordinatorClosed(RuntimeError):
    """The owning map instance was torn down."""
