from .coordinator import ClassificationEvent, MapCoordinator
from .errors import CoordinatorClosed, LoadFailure, PolygonsAlreadyLoaded
from .state import LoadState
from .stream import ClassificationStream

__all__ = [
    "ClassificationEvent",
    "ClassificationStream",
    "CoordinatorClosed",
    "LoadFailure",
    "LoadState",
    "MapCoordinator",
    "PolygonsAlreadyLoaded",
]
