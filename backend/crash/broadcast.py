import logging
import time

from .messages import ChatMessage, StateSnapshot
from .state import LiveGameState

logger = logging.getLogger(__name__)

GROUP_NAME = "crash_game"


class BroadcastHub:
    """
    Fans engine events out to every websocket consumer in ``crash_game``.

    Each event goes out as one ``group_send`` in the order the engine emits
    it; the consumers' handlers just forward ``payload`` to the socket.
    The hub also keeps the live state late joiners are synced from.
    """

    def __init__(self, channel_layer, state: LiveGameState = None, group=GROUP_NAME):
        self.channel_layer = channel_layer
        self.state = state or LiveGameState()
        self.group = group

    async def _group_send(self, event_type, payload):
        await self.channel_layer.group_send(self.group, {"type": event_type, "payload": payload})

    async def status(self, message):
        await self._group_send("crash.status", message.to_message())
        logger.info("Sent status: %s (round %s)", message.status, message.round_id)

    async def update(self, update):
        payload = update.to_message(timestamp=time.time())
        self.state.latest_update = payload
        await self._group_send("crash.update", payload)

    async def chat(self, chat: ChatMessage):
        payload = chat.to_message()
        self.state.chat_messages.append(payload)
        await self._group_send("crash.chat", payload)
        logger.info("Chat message from %s: %s", chat.user, chat.message[:50])

    async def cash_out_ack(self, ack):
        await self._group_send("crash.cashout", ack.to_message())

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(self.state.snapshot())

    async def send_snapshot(self, channel_name):
        await self.channel_layer.send(
            channel_name, {"type": "crash.snapshot", "payload": self.snapshot().to_message()}
        )

    async def send_cash_out_response(self, channel_name, response):
        await self.channel_layer.send(
            channel_name, {"type": "crash.cashout_response", "payload": response.to_message()}
        )
