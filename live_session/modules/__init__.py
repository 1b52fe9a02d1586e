"""
Presenter module board: queue orchestration and drag resolution.
"""

from .drag import (
    LIBRARY_ID_PREFIX,
    DragKind,
    DragSource,
    Droppable,
    DropIntent,
    DropIntentKind,
    DropTarget,
    DropZone,
    Rect,
    detect_collision,
    resolve_drop,
)
from .queue import ModuleQueue, normalize_modules

__all__ = [
    "ModuleQueue",
    "normalize_modules",
    "DragKind",
    "DragSource",
    "DropZone",
    "DropTarget",
    "Droppable",
    "Rect",
    "DropIntent",
    "DropIntentKind",
    "LIBRARY_ID_PREFIX",
    "detect_collision",
    "resolve_drop",
]
