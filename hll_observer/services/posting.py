import asyncio
import logging
from typing import Any, List, Optional, Protocol

import discord
from discord import Embed

from hll_observer.models import RenderedItem
from hll_observer.utils.time import fmt_updated


logger = logging.getLogger(__name__)

CLEAR_LIMIT = 100


class MessageSurface(Protocol):
    """An ordered channel of messages the observer can post status into."""

    async def fetch_recent(self, limit: int) -> List[str]:
        """Return ids of the most recent messages."""

    async def send(self, content: Any) -> str:
        """Post new content and return the new message id."""

    async def fetch(self, message_id: str) -> Any:
        """Resolve a message id; raises if the message is gone."""

    async def edit(self, message: Any, content: Any) -> None:
        """Replace the content of a fetched message."""

    async def delete(self, message: Any) -> None:
        """Remove a fetched message."""


class DiscordChannelSurface:
    """MessageSurface backed by a discord.py text channel; content is an Embed."""

    def __init__(self, channel: discord.abc.Messageable):
        self.channel = channel

    async def fetch_recent(self, limit: int) -> List[str]:
        return [str(m.id) async for m in self.channel.history(limit=limit)]

    async def send(self, content: Embed) -> str:
        msg = await self.channel.send(embed=content)
        return str(msg.id)

    async def fetch(self, message_id: str) -> discord.Message:
        return await self.channel.fetch_message(int(message_id))

    async def edit(self, message: discord.Message, content: Embed) -> None:
        await message.edit(embed=content)

    async def delete(self, message: discord.Message) -> None:
        await message.delete()


async def resolve_channel_surface(bot, channel_id: str) -> Optional[DiscordChannelSurface]:
    try:
        channel = bot.get_channel(int(channel_id))
    except Exception:
        channel = None
    if channel is None:
        try:
            channel = await bot.fetch_channel(int(channel_id))
        except Exception as exc:
            logger.error("Unable to resolve channel %s: %s", channel_id, exc)
            return None
    return DiscordChannelSurface(channel)


def build_server_embed(
    item: RenderedItem,
    *,
    timezone_name: str = "UTC",
    players_label: str = "Spieler",
    updated_label: str = "Aktualisiert",
) -> Embed:
    description = f"{players_label}: {item.current_players}/{item.max_players}"
    if item.formatted_player_block:
        description += f"\n\n{item.formatted_player_block}"
    embed = Embed(title=item.display_name, description=description)
    embed.set_footer(text=f"{updated_label} {fmt_updated(timezone_name)}")
    return embed


async def clear_surface(surface: MessageSurface, limit: int = CLEAR_LIMIT) -> int:
    """Best-effort removal of recent messages. Returns how many were deleted."""
    try:
        message_ids = await surface.fetch_recent(limit)
    except Exception as exc:
        logger.error("Error while fetching messages to clear: %s", exc)
        return 0

    async def _delete(message_id: str) -> bool:
        try:
            await surface.delete(await surface.fetch(message_id))
            return True
        except Exception as exc:
            logger.error("Error while deleting message %s: %s", message_id, exc)
            return False

    results = await asyncio.gather(*(_delete(m) for m in message_ids))
    deleted = sum(1 for r in results if r)
    logger.info("Deleted %d message(s) in the channel.", deleted)
    return deleted
