import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .broadcast import GROUP_NAME
from .engine import ENGINE_CHANNEL
from .messages import CashOutRequest, ChatRequest, Ping, Pong, parse_client_message

logger = logging.getLogger(__name__)


class CrashConsumer(AsyncJsonWebsocketConsumer):
    """
    One player connection. Everything stateful lives in the engine process;
    this consumer relays client requests to the engine channel and forwards
    whatever the engine fans out.
    """

    async def connect(self):
        self.group_name = GROUP_NAME

        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        # late joiners resync from the engine's live state
        await self.channel_layer.send(ENGINE_CHANNEL, {
            "type": "engine.snapshot",
            "reply_channel": self.channel_name,
        })

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        message = parse_client_message(content)

        if isinstance(message, CashOutRequest):
            await self.channel_layer.send(ENGINE_CHANNEL, {
                "type": "engine.cashout",
                "reply_channel": self.channel_name,
                "roundId": message.round_id,
                "multiplier": message.multiplier,
                "walletAddress": message.wallet,
            })
        elif isinstance(message, ChatRequest):
            await self.channel_layer.send(ENGINE_CHANNEL, {
                "type": "engine.chat",
                "address": message.address,
                "message": message.text,
            })
        elif isinstance(message, Ping):
            await self.send_json(Pong().to_message())
        else:
            logger.debug("Ignoring client message: %r", content)

    # ---------------------------------------------------
    # ENGINE -> CLIENT
    # ---------------------------------------------------
    async def crash_status(self, event):
        await self.send_json(event["payload"])

    async def crash_update(self, event):
        await self.send_json(event["payload"])

    async def crash_chat(self, event):
        await self.send_json(event["payload"])

    async def crash_cashout(self, event):
        await self.send_json(event["payload"])

    async def crash_snapshot(self, event):
        await self.send_json(event["payload"])

    async def crash_cashout_response(self, event):
        await self.send_json(event["payload"])
