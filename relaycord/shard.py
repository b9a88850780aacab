"""
Created by Epic at 9/5/20
"""
from .heartbeat import HeartbeatScheduler
from .opcodes import Opcode
from .packets import decode, identify
from .throttle import ShardCommand
from .values import GATEWAY_VERSION

from asyncio import TimeoutError, current_task, get_running_loop, sleep
from aiohttp import ClientError, WSMsgType
from logging import getLogger


class Shard:
    """
    Everything we know about one live gateway connection. A new one is made for every connection, nothing carries
    over from the last one.
    """
    __slots__ = ("index", "ws", "sequence", "ready", "heartbeat_interval", "heartbeat_token", "heartbeat_task",
                 "awaiting_ack")

    def __init__(self, index, ws):
        self.index = index
        self.ws = ws
        self.sequence = None
        self.ready = False
        self.heartbeat_interval = None  # Milliseconds, from HELLO
        self.heartbeat_token = None
        self.heartbeat_task = None
        self.awaiting_ack = False

    def __repr__(self):
        return f"<Shard index={self.index} ready={self.ready} sequence={self.sequence}>"


class ShardSession:
    def __init__(self, index, client, gateway_url, generation):
        """
        Drives one shard index through connect -> hello -> identify -> ready, and back to connect whenever the
        connection drops. For more information on what sharding is and how it works:
        https://discord.com/developers/docs/topics/gateway#sharding.
        :param index: The shard index.
        :param client: A relaycord.Client object which owns the shard records.
        :param gateway_url: The gateway url without query parameters.
        :param generation: The client generation this session belongs to. Once it changes the session goes quiet.
        """
        self.index = index
        self.client = client
        self.gateway_url = gateway_url
        self.generation = generation

        self.logger = getLogger(f"relaycord.shard.{self.index}")
        self.heartbeat = HeartbeatScheduler(client, index)
        self.read_task = None
        self.connect_task = None

    def __repr__(self):
        return f"<ShardSession index={self.index}>"

    @property
    def url(self):
        return f"{self.gateway_url}/?v={GATEWAY_VERSION}&encoding=json"

    @property
    def shard(self):
        return self.client.shards.get(self.index)

    @property
    def is_current(self):
        return self.client.generation == self.generation and self.client.sessions.get(self.index) is self

    async def connect(self):
        """
        Opens the websocket. A failed attempt is retried after client.connect_retry_delay, forever.
        """
        if not self.is_current:
            return
        self.client.debug(f"Connecting shard: {self.index}")
        try:
            ws = await self.client.http.create_ws(self.url)
        except (ClientError, TimeoutError, OSError) as e:
            self.client.do_emit("shard.connect_error", self.index)
            self.client.debug(f"Could not connect shard {self.index}: {e}")
            self.schedule_connect(self.client.connect_retry_delay, "Trying again to connect shard")
            return

        if not self.is_current:
            # We got disconnected while the socket was opening
            await ws.close()
            return

        shard = Shard(self.index, ws)
        self.client.shards[self.index] = shard
        self.client.debug(f"Connected shard: {self.index}")
        self.client.do_emit("shard.connected", self.index)
        self.read_task = get_running_loop().create_task(self.read_loop(shard))

    def schedule_connect(self, delay, reason):
        async def later():
            await sleep(delay)
            if not self.is_current:
                return
            self.client.debug(f"{reason}: {self.index}")
            await self.connect()

        self.connect_task = self.client.spawn(later())

    async def close(self):
        task = self.connect_task
        if task is not None and task is not current_task():
            task.cancel()
        self.connect_task = None
        shard = self.shard
        if shard is not None and not shard.ws.closed:
            await shard.ws.close()

    async def read_loop(self, shard):
        """
        Receives frames from the websocket and hands them to handle_frame until the connection closes.
        """
        reason = None
        try:
            while True:
                message = await shard.ws.receive()
                if message.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    self.handle_frame(shard, message.data)
                elif message.type == WSMsgType.CLOSE:
                    reason = message.extra
                    self.logger.warning(f"WebSocket is closing! Close code: {message.data}. Reason: {reason}")
                    await shard.ws.close()
                    break
                elif message.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break
                elif message.type == WSMsgType.ERROR:
                    self.logger.warning(f"WebSocket error: {message.data}")
                    break
                else:
                    self.logger.warning("Unknown message type: " + str(message.type))
        except Exception as e:
            self.client.show_throwable(e)
        await self.on_transport_closed(shard, shard.ws.close_code, reason)

    def handle_frame(self, shard, raw):
        """
        Handles one inbound frame. Any frame at all counts as a sign of life for the heartbeat.
        """
        shard.awaiting_ack = False
        try:
            data = decode(raw)
        except ValueError:
            self.client.debug(f"Got undecodable message on shard {self.index}", raw)
            return
        self.logger.debug("Data received: " + str(data))

        opcode = data["op"]
        if not self.client.internal.listeners(f"opcode.{opcode}"):
            self.client.debug(f"Got Unknown Message on shard {self.index}", data)
        self.client.do_emit(f"opcode.{opcode}", self.index, opcode, data)

    async def on_transport_closed(self, shard, code, reason):
        self.heartbeat.cancel(shard)
        if not self.is_current:
            self.logger.debug(f"Stale connection closed ({code})")
            return
        if self.client.shards.get(self.index) is shard:
            del self.client.shards[self.index]
        self.client.do_emit("shard.closed", self.index, code, reason)

    # Opcode handling, called by the client's internal handlers
    def handle_dispatch(self, data):
        shard = self.shard
        if shard is not None:
            shard.sequence = data["s"]

        event = data["t"]
        if not self.client.internal.listeners(f"event.{event}"):
            self.client.debug(f"Got Unknown Event on shard {self.index}", data)
        self.client.do_emit(f"event.{event}", self.index, event, data["d"])

    def handle_hello(self, data):
        shard = self.shard
        if shard is None:
            return
        shard.heartbeat_interval = data["d"]["heartbeat_interval"]
        self.heartbeat.schedule()
        self.logger.debug("Started heartbeat timer")
        self.send_identify()

    def send_identify(self):
        """
        Queues an identify message, which is the initial handshake. Never sent directly, it always waits its turn on
        the client's throttle queue.
        https://discord.com/developers/docs/topics/gateway#identify
        """
        gateway_info = self.client.gateway_info
        shard_field = None
        if self.client.is_bot and gateway_info is not None and gateway_info.shards is not None:
            shard_field = (self.index, gateway_info.shards)

        payload = identify(self.client.token, self.client.intents, shard=shard_field)
        self.client.info(f"Scheduling identify for shard {self.index}", {**payload, "token": "<redacted>"})
        self.client.throttle.enqueue(ShardCommand(self.index, Opcode.IDENTIFY, payload))
