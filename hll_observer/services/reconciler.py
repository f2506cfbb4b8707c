import logging
from typing import Any, Optional, Sequence

from hll_observer.models import ReconcileResult
from hll_observer.services.posting import MessageSurface


logger = logging.getLogger(__name__)


class SlotReconciler:
    """
    Align this cycle's content with the messages posted last cycle.

    Alignment is positional: the message at index ``i`` is edited in place to
    hold item ``i``. Positions beyond the old list are sent fresh and surplus
    old messages are deleted. The returned slot list only contains messages
    that were confirmed edited or sent.
    """

    async def _send(self, surface: MessageSurface, content: Any, result: ReconcileResult) -> Optional[str]:
        try:
            message_id = await surface.send(content)
        except Exception as exc:
            logger.error("Error sending message: %s", exc)
            result.failed += 1
            return None
        result.created += 1
        return message_id

    async def reconcile(
        self,
        surface: MessageSurface,
        contents: Sequence[Any],
        previous_slots: Sequence[str],
    ) -> ReconcileResult:
        result = ReconcileResult()

        for i, content in enumerate(contents):
            if i < len(previous_slots):
                slot_id = previous_slots[i]
                try:
                    message = await surface.fetch(slot_id)
                    await surface.edit(message, content)
                except Exception as exc:
                    logger.error("Error editing message %s: %s", slot_id, exc)
                    new_id = await self._send(surface, content, result)
                else:
                    result.edited += 1
                    new_id = slot_id
            else:
                new_id = await self._send(surface, content, result)

            if new_id is not None:
                result.slots.append(new_id)

        for slot_id in previous_slots[len(contents):]:
            try:
                message = await surface.fetch(slot_id)
                await surface.delete(message)
                result.deleted += 1
            except Exception as exc:
                logger.error("Error deleting message %s: %s", slot_id, exc)
                result.failed += 1

        return result
