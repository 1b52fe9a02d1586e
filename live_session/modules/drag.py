"""
Drag-and-drop resolution for the presenter's module board.

A drag carries a typed ``DragSource`` (library item, queued module or the
active module) and ends over a ``DropTarget`` (one of three zones, or
another queued module). ``resolve_drop`` turns that pair into a single
``DropIntent`` that the module queue executes.

Geometry is kept separate: ``detect_collision`` picks the drop target under
the pointer, preferring strict containment and falling back to the nearest
center only when no target contains the pointer.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from ..api.types import SessionModule, WorkspaceModule

LIBRARY_ID_PREFIX = "workspace-"
DEFAULT_SUPPORTED_TYPES = ("questions", "timer")


class DragKind(Enum):
    LIBRARY = "library"
    QUEUED = "queued"
    ACTIVE = "active"


@dataclass(frozen=True)
class DragSource:
    """What is being dragged."""

    kind: DragKind
    id: str

    @classmethod
    def library(cls, library_id: int | str) -> DragSource:
        return cls(DragKind.LIBRARY, str(library_id))

    @classmethod
    def session_module(cls, module: SessionModule) -> DragSource:
        kind = DragKind.ACTIVE if module.is_active else DragKind.QUEUED
        return cls(kind, module.id)

    @classmethod
    def parse(
        cls, raw_id: str, modules: Sequence[SessionModule] | None = None
    ) -> DragSource:
        """Build a source from a namespaced draggable id.

        Library items use the ``workspace-<id>`` namespace; anything else is
        a session module id, active if ``modules`` says so.
        """
        raw_id = str(raw_id)
        if raw_id.startswith(LIBRARY_ID_PREFIX):
            return cls(DragKind.LIBRARY, raw_id[len(LIBRARY_ID_PREFIX):])
        for module in modules or ():
            if module.id == raw_id and module.is_active:
                return cls(DragKind.ACTIVE, raw_id)
        return cls(DragKind.QUEUED, raw_id)

    @property
    def raw_id(self) -> str:
        if self.kind is DragKind.LIBRARY:
            return f"{LIBRARY_ID_PREFIX}{self.id}"
        return self.id


class DropZone(Enum):
    ACTIVE = "active-module-zone"
    QUEUE = "module-queue-zone"
    REMOVE = "remove-queue-zone"


@dataclass(frozen=True)
class DropTarget:
    """A drop zone, or a queued module (dropping onto it reorders)."""

    zone: DropZone | None = None
    module_id: str | None = None

    @classmethod
    def parse(cls, raw_id: str) -> DropTarget:
        try:
            return cls(zone=DropZone(raw_id))
        except ValueError:
            return cls(module_id=str(raw_id))

    @property
    def raw_id(self) -> str:
        return self.zone.value if self.zone is not None else str(self.module_id)


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.width / 2, self.top + self.height / 2)

    def contains(self, point: tuple[float, float]) -> bool:
        x, y = point
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass(frozen=True)
class Droppable:
    target: DropTarget
    rect: Rect


def detect_collision(
    pointer: tuple[float, float] | None,
    droppables: Iterable[Droppable],
    drag_center: tuple[float, float] | None = None,
) -> DropTarget | None:
    """Pick the drop target for a drag.

    Targets containing the pointer win; among nested targets the smallest
    one wins, so a queued module beats the queue zone around it. Without a
    containing target, the target whose center is nearest to ``drag_center``
    (or the pointer) is chosen.
    """
    candidates = list(droppables)
    if not candidates:
        return None

    if pointer is not None:
        containing = [d for d in candidates if d.rect.contains(pointer)]
        if containing:
            return min(containing, key=lambda d: d.rect.area).target

    origin = drag_center or pointer
    if origin is None:
        return None
    return min(candidates, key=lambda d: math.dist(origin, d.rect.center)).target


class DropIntentKind(Enum):
    ADD = "add"
    ADD_AND_ACTIVATE = "add_and_activate"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    REMOVE = "remove"
    REORDER = "reorder"
    NONE = "none"


@dataclass(frozen=True)
class DropIntent:
    kind: DropIntentKind
    module_id: str | None = None
    library_id: int | None = None
    target_id: str | None = None


NO_INTENT = DropIntent(DropIntentKind.NONE)


def _library_item(library: Iterable[WorkspaceModule], raw_id: str) -> WorkspaceModule | None:
    try:
        library_id = int(raw_id)
    except ValueError:
        return None
    return next((m for m in library if m.id == library_id), None)


def resolve_drop(
    source: DragSource,
    target: DropTarget | None,
    modules: Sequence[SessionModule],
    library: Sequence[WorkspaceModule] = (),
    max_queue_size: int = 3,
    supported_types: Sequence[str] = DEFAULT_SUPPORTED_TYPES,
) -> DropIntent:
    """Classify a finished drag into the single action it requests.

    Library items dropped on the active zone are added and activated when
    nothing is active or the queue still has room; dropped on the queue
    (zone or item) they are added while the queue has room. Session modules
    dropped on the active zone are activated, on the remove zone removed,
    and the active module dropped back on the queue is deactivated. A queued
    module dropped on another queued module is reordered.
    """
    if target is None:
        return NO_INTENT

    queue_ids = {m.id for m in modules if not m.is_active}
    queue_length = len(queue_ids)
    has_active = any(m.is_active for m in modules)
    over_queue = target.zone is DropZone.QUEUE or (
        target.module_id is not None and target.module_id in queue_ids
    )

    if source.kind is DragKind.LIBRARY:
        item = _library_item(library, source.id)
        if item is None or item.type not in supported_types:
            return NO_INTENT
        can_queue = queue_length < max_queue_size
        can_activate = not has_active or can_queue
        if target.zone is DropZone.ACTIVE and can_activate:
            return DropIntent(DropIntentKind.ADD_AND_ACTIVATE, library_id=item.id)
        if over_queue and can_queue:
            return DropIntent(DropIntentKind.ADD, library_id=item.id)
        return NO_INTENT

    module = next((m for m in modules if m.id == source.id), None)
    if module is None:
        return NO_INTENT

    if target.zone is DropZone.ACTIVE:
        if module.is_active:
            return NO_INTENT
        return DropIntent(DropIntentKind.ACTIVATE, module_id=module.id)

    if target.zone is DropZone.REMOVE:
        return DropIntent(DropIntentKind.REMOVE, module_id=module.id)

    if module.is_active:
        if over_queue:
            return DropIntent(DropIntentKind.DEACTIVATE, module_id=module.id)
        return NO_INTENT

    if target.module_id is not None and target.module_id != module.id and over_queue:
        return DropIntent(
            DropIntentKind.REORDER, module_id=module.id, target_id=target.module_id
        )
    return NO_INTENT
