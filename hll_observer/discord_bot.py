import logging
from functools import partial

import discord
from discord import app_commands
from discord.ext import commands

from hll_observer.config import Config
from hll_observer.services import discovery as discovery_service
from hll_observer.services import query_client as query_client_service
from hll_observer.services import snapshot as snapshot_service
from hll_observer.services.a2s_client import create as create_a2s
from hll_observer.services.cycle_scheduler import CycleScheduler
from hll_observer.services.posting import build_server_embed, resolve_channel_surface
from hll_observer.services.reconciler import SlotReconciler
from hll_observer.services.update_cycle import ObserverState, UpdateCycle

logger = logging.getLogger(__name__)


def create(config: Config):
    surface_ids = config.require_surfaces()
    timezone_name = config.get("timezone") or "UTC"
    labels = config.section("display").get("labels") or {}

    state = ObserverState()
    transport = create_a2s(config)
    client = query_client_service.create(config, transport, state.cache)
    builder = snapshot_service.create(config, client, state.cache)
    provider = discovery_service.create(config)

    bot = ObserverBot(
        interval_ms=int(config.section("cycle").get("interval_ms", 15000)),
        refresh_minutes=int(config.section("discovery").get("refresh_minutes", 0) or 0),
        timezone_name=timezone_name,
    )
    bot.cycle = UpdateCycle(
        state=state,
        discovery=provider,
        builder=builder,
        reconciler=SlotReconciler(),
        surface_ids=surface_ids,
        resolve_surface=partial(resolve_channel_surface, bot),
        render=partial(
            build_server_embed,
            timezone_name=timezone_name,
            players_label=labels.get("players", "Spieler"),
            updated_label=labels.get("updated", "Aktualisiert"),
        ),
    )
    return bot


class ObserverBot(commands.Bot):
    def __init__(self, interval_ms: int, refresh_minutes: int = 0, timezone_name: str = "UTC"):
        self.interval_ms = interval_ms
        self.refresh_minutes = refresh_minutes
        self.timezone_name = timezone_name
        self.cycle: UpdateCycle | None = None
        self.cycle_scheduler: CycleScheduler | None = None

        intents = discord.Intents.default()
        super().__init__(command_prefix="/", intents=intents)

    async def start_observing(self):
        """Clear the channels, discover servers, then hand the cycle to the scheduler."""
        if self.cycle_scheduler is not None:
            return
        await self.cycle.initialize()
        self.cycle_scheduler = CycleScheduler(
            self.cycle,
            self.interval_ms,
            refresh_minutes=self.refresh_minutes,
            timezone=self.timezone_name,
        )
        self.cycle_scheduler.start()

    async def close(self):
        if self.cycle_scheduler is not None:
            self.cycle_scheduler.shutdown()
        await super().close()

    async def setup_hook(self):
        @self.event
        async def on_ready():
            logger.info(f"{self.user} has connected to Discord! (id={self.user.id})")
            await self.start_observing()

        @self.tree.command(name="observer_refresh", description="Refresh the server status messages now")
        @app_commands.checks.has_permissions(administrator=True)
        async def observer_refresh(interaction: discord.Interaction):
            logger.info("Received command: observer_refresh")
            if self.cycle.state.running:
                await interaction.response.send_message("An update is already in progress.", ephemeral=True)
                return
            self.loop.create_task(self.cycle.run_cycle_if_idle())
            await interaction.response.send_message("Started a status refresh.", ephemeral=True)

        @self.tree.command(name="observer_rediscover", description="Reload the list of servers to watch")
        @app_commands.checks.has_permissions(administrator=True)
        async def observer_rediscover(interaction: discord.Interaction):
            logger.info("Received command: observer_rediscover")
            await interaction.response.defer(ephemeral=True)
            servers = await self.cycle.refresh_servers()
            await interaction.followup.send(f"Watching {len(servers)} servers.", ephemeral=True)

        await self.tree.sync()
