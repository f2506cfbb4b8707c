import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from hll_observer.models import RenderedItem, ServerRef
from hll_observer.services.discovery import DiscoveryProvider
from hll_observer.services.posting import MessageSurface, clear_surface
from hll_observer.services.query_cache import QueryResultCache
from hll_observer.services.reconciler import SlotReconciler
from hll_observer.services.snapshot import SnapshotBuilder


logger = logging.getLogger(__name__)

SurfaceResolver = Callable[[str], Awaitable[Optional[MessageSurface]]]
Renderer = Callable[[RenderedItem], Any]


@dataclass
class ObserverState:
    """Everything that survives from one cycle to the next."""

    cache: QueryResultCache = field(default_factory=QueryResultCache)
    servers: List[ServerRef] = field(default_factory=list)
    slots: Dict[str, List[str]] = field(default_factory=dict)
    running: bool = False


class UpdateCycle:
    def __init__(
        self,
        state: ObserverState,
        discovery: DiscoveryProvider,
        builder: SnapshotBuilder,
        reconciler: SlotReconciler,
        surface_ids: Sequence[str],
        resolve_surface: SurfaceResolver,
        render: Renderer,
    ):
        self.state = state
        self.discovery = discovery
        self.builder = builder
        self.reconciler = reconciler
        self.surface_ids = [str(s) for s in surface_ids]
        self.resolve_surface = resolve_surface
        self.render = render

    async def initialize(self) -> None:
        for surface_id in self.surface_ids:
            try:
                surface = await self.resolve_surface(surface_id)
                if surface is not None:
                    await clear_surface(surface)
            except Exception as exc:
                logger.error("Error clearing channel %s: %s", surface_id, exc)
            self.state.slots[surface_id] = []
        await self.refresh_servers()

    async def refresh_servers(self) -> List[ServerRef]:
        try:
            servers = await self.discovery.discover()
        except Exception as exc:
            logger.error("Server discovery failed, keeping %d known servers: %s", len(self.state.servers), exc)
            return self.state.servers
        # Replaced wholesale, never patched.
        self.state.servers = list(servers)
        logger.info("Server list refreshed: %d servers", len(self.state.servers))
        return self.state.servers

    async def run_cycle_if_idle(self) -> bool:
        if self.state.running:
            logger.info("Update already in progress, skipping this cycle")
            return False
        self.state.running = True
        try:
            await self._run_cycle()
        except Exception as exc:
            logger.exception("Error in update cycle: %s", exc)
        finally:
            self.state.running = False
        return True

    async def _run_cycle(self) -> None:
        snapshot = await self.builder.build(self.state.servers)
        contents = [self.render(item) for item in snapshot.items]

        for surface_id in self.surface_ids:
            try:
                surface = await self.resolve_surface(surface_id)
                if surface is None:
                    logger.warning("Channel %s unavailable, skipping", surface_id)
                    continue
                previous = self.state.slots.get(surface_id, [])
                result = await self.reconciler.reconcile(surface, contents, previous)
                self.state.slots[surface_id] = result.slots
                logger.info(
                    "Channel %s: %d edited, %d created, %d deleted, %d failed",
                    surface_id,
                    result.edited,
                    result.created,
                    result.deleted,
                    result.failed,
                )
            except Exception as exc:
                logger.error("Error fetching channel or processing messages for %s: %s", surface_id, exc)
