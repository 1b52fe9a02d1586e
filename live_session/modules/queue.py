"""
Module queue orchestrator.

Presenter-side view of a session's modules: at most one active module, the
rest form an ordered queue. The server decides which module is active, so
activation is never applied locally before the backend confirms it; removal
is applied optimistically and self-heals with a refetch on failure.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..api.client import LiveSessionApi
from ..api.types import SessionModule, WorkspaceModule
from ..config import LiveSessionConfig
from ..exceptions import (
    LiveSessionError,
    ModuleNotFoundInSessionError,
    QueueFullError,
    UnsupportedModuleError,
    error_message,
)
from ..polling import Poller
from .drag import DragSource, DropIntent, DropIntentKind, DropTarget, resolve_drop

logger = logging.getLogger(__name__)


def normalize_modules(
    modules: list[SessionModule], previous_order: list[str] | None = None
) -> list[SessionModule]:
    """Enforce the board invariants on a module list.

    - Only the first module reporting ``is_active`` stays active.
    - The queue keeps ``previous_order`` for ids it already knew; new ids
      follow in the order given.
    - Queue ``order`` values are dense and zero-based.

    Returns the active module (if any) followed by the queue.
    """
    active: SessionModule | None = None
    queue: list[SessionModule] = []
    for module in modules:
        if module.is_active and active is None:
            active = module
        elif module.is_active:
            logger.warning(f"Multiple active modules reported; demoting {module.id}")
            queue.append(replace(module, is_active=False))
        else:
            queue.append(module)

    if previous_order:
        rank = {module_id: i for i, module_id in enumerate(previous_order)}
        known = sorted((m for m in queue if m.id in rank), key=lambda m: rank[m.id])
        queue = known + [m for m in queue if m.id not in rank]

    queue = [replace(m, order=i) for i, m in enumerate(queue)]
    return ([active] if active else []) + queue


class ModuleQueue:
    """Session module board with activation, removal, adding and reordering.

    Presenter calls use the API client's user token. Mutation failures are
    logged, recorded in ``last_error`` and followed by a corrective refetch;
    they are not raised.
    """

    def __init__(
        self,
        api: LiveSessionApi,
        session_id: int,
        library: list[WorkspaceModule] | None = None,
        config: LiveSessionConfig | None = None,
    ) -> None:
        self.api = api
        self.session_id = session_id
        self.library: list[WorkspaceModule] = list(library or [])
        self.config = config or LiveSessionConfig()
        self.last_error: str | None = None
        self._modules: list[SessionModule] = []
        self._poller: Poller[list[SessionModule]] = Poller(
            self._fetch,
            interval=self.config.module_poll_interval,
            on_data=self._overwrite,
            name=f"session-modules:{session_id}",
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def modules(self) -> list[SessionModule]:
        return list(self._modules)

    @property
    def active_module(self) -> SessionModule | None:
        return next((m for m in self._modules if m.is_active), None)

    @property
    def queue_modules(self) -> list[SessionModule]:
        return sorted((m for m in self._modules if not m.is_active), key=lambda m: m.order)

    @property
    def is_loading(self) -> bool:
        return self._poller.is_loading

    @property
    def error(self) -> Exception | None:
        return self._poller.error

    def can_add(self, activate: bool = False) -> bool:
        """Whether a library module may be added to the queue (or activated)."""
        has_room = len(self.queue_modules) < self.config.max_queue_size
        if activate:
            return self.active_module is None or has_room
        return has_room

    def _overwrite(self, modules: list[SessionModule]) -> None:
        previous = [m.id for m in self.queue_modules]
        self._modules = normalize_modules(modules, previous)

    async def _fetch(self) -> list[SessionModule]:
        return await self.api.list_session_modules(self.session_id)

    # =========================================================================
    # Operations
    # =========================================================================

    async def refresh(self) -> None:
        """Refetch the module list; coalesced with any fetch in flight."""
        await self._poller.refresh()

    async def load_library(self, workspace_id: int) -> list[WorkspaceModule]:
        self.library = await self.api.list_workspace_modules(workspace_id)
        return self.library

    async def _mutation_failed(self, action: str, exc: LiveSessionError) -> None:
        logger.warning(f"{action} failed for session {self.session_id}: {exc}")
        self.last_error = error_message(exc, f"{action} failed")
        await self.refresh()

    async def activate_module(self, module_id: str) -> bool:
        """Activate a module and refetch; the server decides the outcome."""
        try:
            await self.api.activate_session_module(self.session_id, module_id)
        except LiveSessionError as e:
            await self._mutation_failed(f"Activating module {module_id}", e)
            return False
        self.last_error = None
        await self.refresh()
        return True

    async def deactivate_active(self) -> bool:
        """Move the active module back to the queue."""
        try:
            await self.api.deactivate_active_module(self.session_id)
        except LiveSessionError as e:
            await self._mutation_failed("Deactivating active module", e)
            return False
        self.last_error = None
        await self.refresh()
        return True

    async def remove_module(self, module_id: str) -> bool:
        """Remove a module immediately, then confirm with the backend."""
        self._modules = normalize_modules(
            [m for m in self._modules if m.id != module_id],
            [m.id for m in self.queue_modules],
        )
        try:
            await self.api.delete_session_module(self.session_id, module_id)
        except LiveSessionError as e:
            await self._mutation_failed(f"Removing module {module_id}", e)
            return False
        self.last_error = None
        return True

    async def add_from_library(
        self, library_id: int, activate: bool = False
    ) -> SessionModule | None:
        """Create a session module from a library module.

        Args:
            library_id: Workspace library module id
            activate: Activate the new module right after creating it

        Returns:
            The created module, or None if the backend call failed

        Raises:
            ModuleNotFoundInSessionError: If the library id is unknown
            UnsupportedModuleError: If the module type has no live view
            QueueFullError: If the board has no room for it
        """
        item = next((m for m in self.library if m.id == library_id), None)
        if item is None:
            raise ModuleNotFoundInSessionError(str(library_id), source="library")
        if item.type not in self.config.supported_module_types:
            raise UnsupportedModuleError(item.type)
        if not self.can_add(activate):
            raise QueueFullError(self.config.max_queue_size)

        try:
            created = await self.api.create_session_module(self.session_id, library_id)
        except LiveSessionError as e:
            await self._mutation_failed(f"Adding library module {library_id}", e)
            return None

        if created is None:
            logger.info(f"Create returned no module for library {library_id}; refetching")
            await self.refresh()
            return None

        created = replace(created, is_active=False)
        self._overwrite([*self._modules, created])
        self.last_error = None
        logger.debug(f"Added module {created.id} from library {library_id}")

        if activate:
            await self.activate_module(created.id)
        return created

    def reorder_queue(self, from_id: str, to_id: str) -> bool:
        """Move a queued module to another's position. Local only.

        Returns False (and changes nothing) unless both ids are queued.
        """
        queue = self.queue_modules
        ids = [m.id for m in queue]
        if from_id not in ids or to_id not in ids or from_id == to_id:
            return False

        moved = queue.pop(ids.index(from_id))
        queue.insert(ids.index(to_id), moved)
        queue = [replace(m, order=i) for i, m in enumerate(queue)]
        active = self.active_module
        self._modules = ([active] if active else []) + queue
        return True

    async def handle_drop(self, source: DragSource, target: DropTarget | None) -> DropIntent:
        """Resolve a finished drag and perform the action it requests."""
        intent = resolve_drop(
            source,
            target,
            self._modules,
            self.library,
            max_queue_size=self.config.max_queue_size,
            supported_types=self.config.supported_module_types,
        )
        target_id = target.raw_id if target else None
        logger.debug(f"Drop {source.raw_id} -> {target_id}: {intent.kind.value}")

        if intent.kind is DropIntentKind.ADD_AND_ACTIVATE:
            await self.add_from_library(intent.library_id, activate=True)
        elif intent.kind is DropIntentKind.ADD:
            await self.add_from_library(intent.library_id)
        elif intent.kind is DropIntentKind.ACTIVATE:
            await self.activate_module(intent.module_id)
        elif intent.kind is DropIntentKind.DEACTIVATE:
            await self.deactivate_active()
        elif intent.kind is DropIntentKind.REMOVE:
            await self.remove_module(intent.module_id)
        elif intent.kind is DropIntentKind.REORDER:
            self.reorder_queue(intent.module_id, intent.target_id)
        return intent

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_polling(self) -> None:
        await self._poller.start()

    async def stop(self) -> None:
        await self._poller.stop()
