"""
Created by Epic at 9/1/20
"""
from asyncio import Event, TimeoutError, gather, get_running_loop, iscoroutine, new_event_loop
from logging import getLogger
from time import time

from aiohttp import ClientError

from .dispatcher import EventEmitter
from .exceptions import AlreadyConnected, AuthenticationFailed, HTTPException, InvalidToken
from .http import HttpClient, Route
from .opcodes import AUTH_CLOSE_CODES, Opcode
from .packets import encode
from .shard import ShardSession
from .state import GatewayInfo, IGNORED_EVENTS, StateMirror
from .throttle import OutboundThrottleQueue
from .timers import FencedLoop, new_token
from . import values

__all__ = ("Client",)


class Client:
    # Overridable per instance, all in seconds
    reconnect_delay = values.RECONNECT_DELAY
    connect_retry_delay = values.CONNECT_RETRY_DELAY
    identify_period = values.IDENTIFY_PERIOD
    cleanup_period = values.CLEANUP_PERIOD
    dm_channel_ttl = values.DM_CHANNEL_TTL

    def __init__(self, client_id, client_secret, token, is_bot=True, *, intents=values.DEFAULT_INTENTS, loop=None,
                 debug=False, reuse_dm_channels=False):
        """
        The client to interact with the discord gateway
        :param client_id: the application id
        :param client_secret: the application secret
        :param token: the discord token to use
        :param is_bot: whether the token is a bot token
        :param intents: the gateway intents to identify with
        :param loop: an event loop to run on. If None, run() creates and owns one
        :param debug: emit client.debug diagnostics to listeners
        :param reuse_dm_channels: reuse known DM channels in send_person_message instead of opening one every time
        """
        # Configurable stuff
        self.client_id = client_id
        self.client_secret = client_secret
        self.token = token
        self.is_bot = is_bot
        self.intents = int(intents)
        self.loop = loop
        self.debug_mode = debug
        self.reuse_dm_channels = reuse_dm_channels

        # Things used by the lib
        self.logger = getLogger("relaycord")
        self.internal = EventEmitter(self.show_throwable)
        self.events = EventEmitter(self.show_throwable)
        self.state = StateMirror(self.info)
        self.throttle = OutboundThrottleQueue(self.send_shard_command, self.identify_period, self.show_throwable)
        self.cleanup_loop = FencedLoop(self.cleanup_period, self.do_cleanup, self.show_throwable, name="cleanup")
        self.exit_event = Event()
        self.background = set()

        self.http = None
        self.gateway_info = None
        self.my_info = {}
        self.shards = {}
        self.sessions = {}
        self.generation = None
        self.connect_time = 0
        self.disconnecting = False

        # Connection handling
        self.internal.on("shard.closed", self.shard_closed)

        # Opcode handling
        self.internal.on(f"opcode.{Opcode.DISPATCH}", self.got_dispatch)
        self.internal.on(f"opcode.{Opcode.HEARTBEAT}", self.got_heartbeat)
        self.internal.on(f"opcode.{Opcode.RECONNECT}", self.got_reconnect_request)
        self.internal.on(f"opcode.{Opcode.INVALID_SESSION}", self.got_invalid_session)
        self.internal.on(f"opcode.{Opcode.HELLO}", self.got_hello)
        self.internal.on(f"opcode.{Opcode.HEARTBEAT_ACK}", self.got_heartbeat_ack)

        # Events
        self.internal.on("event.READY", self.handle_ready)
        self.internal.on("event.GUILD_CREATE", self.state.handle_guild_create)
        self.internal.on("event.GUILD_DELETE", self.state.handle_guild_delete)
        self.internal.on("event.CHANNEL_CREATE", self.state.handle_channel_create)
        self.internal.on("event.CHANNEL_DELETE", self.state.handle_channel_delete)
        for event in IGNORED_EVENTS:
            self.internal.on(f"event.{event}", self.state.noop)

    def reset(self):
        self.throttle.stop()
        self.cleanup_loop.stop()
        self.state.reset()
        self.http = None
        self.gateway_info = None
        self.my_info = {}
        self.shards = {}
        self.sessions = {}
        self.generation = None
        self.connect_time = 0

    # Event surface
    def do_emit(self, event, *args, internal_only=False):
        """
        Emits to our own handlers, then to the public ones with the client as the first argument.
        """
        self.internal.emit(event, *args)
        if internal_only:
            return
        self.events.emit(event, self, *args)

    def on(self, event, func):
        self.events.on(event, func)
        return func

    def remove_listener(self, event, func):
        self.events.remove_listener(event, func)

    def listen(self, event):
        """
        Listen to a event or a opcode.
        :param event: a opcode, a dispatch event name like "MESSAGE_CREATE" or a client event like "shard.closed"
        """
        if isinstance(event, int):
            key = f"opcode.{event}"
        elif isinstance(event, str):
            key = event if "." in event else f"event.{event.upper()}"
        else:
            raise TypeError("Invalid event type!")

        def get_func(func):
            return self.on(key, func)

        return get_func

    def show_throwable(self, throwable):
        """
        Reports an exception to client.error listeners. Falls back to logging if there are none or they fail.
        """
        handlers = self.events.listeners("client.error")
        if not handlers:
            self.logger.error("Caught exception", exc_info=throwable)
            return
        for handler in handlers:
            try:
                result = handler(self, throwable)
                if iscoroutine(result):
                    get_running_loop().create_task(result).add_done_callback(self._error_handler_done)
            except Exception as e:
                self.logger.error("Caught exception in error handler", exc_info=e)
                self.logger.error("Caused trying to report", exc_info=throwable)

    def _error_handler_done(self, task):
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("Caught exception in error handler", exc_info=task.exception())

    def debug(self, text, *details):
        if self.debug_mode and self.events.listeners("client.debug"):
            self.do_emit("client.debug", text, *details)
        else:
            self.logger.debug(" ".join([text, *map(str, details)]))

    def info(self, text, *details):
        if self.events.listeners("client.message"):
            self.do_emit("client.message", text, *details)
        else:
            self.logger.info(" ".join([text, *map(str, details)]))

    def spawn(self, coro):
        task = get_running_loop().create_task(coro)
        self.background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task):
        self.background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.show_throwable(task.exception())

    # Lifecycle
    def run(self):
        """
        Connects and blocks until disconnect() is called. Uses the supplied loop, or creates and owns one.
        """
        owned = self.loop is None
        loop = new_event_loop() if owned else self.loop
        try:
            loop.run_until_complete(self.start())
        except KeyboardInterrupt:
            loop.run_until_complete(self.disconnect())
        finally:
            if owned:
                loop.close()

    async def start(self):
        self.exit_event.clear()
        await self.connect()
        await self.exit_event.wait()
        if self.http is not None:
            await self.disconnect()

    async def connect(self):
        """
        Fetches gateway details, spawns every shard and starts the identify queue and the cleanup sweep.
        """
        if self.http is not None:
            raise AlreadyConnected
        if not self.token:
            raise InvalidToken

        self.reset()
        self.disconnecting = False
        self.generation = new_token()
        self.connect_time = time()
        self.http = HttpClient(self.token, self.is_bot)

        self.throttle.loop.period = self.identify_period
        self.cleanup_loop.period = self.cleanup_period
        self.throttle.start()
        self.cleanup_loop.start()

        self.my_info = await self.api_request(Route("GET", "/users/@me")) or {}

        data = await self.api_request(Route("GET", "/gateway/bot" if self.is_bot else "/gateway"))
        if data is None:
            return
        gateway_info = GatewayInfo.from_payload(data)
        if gateway_info is None:
            self.info("Unknown response from API", data)
            return
        self.gateway_info = gateway_info
        await self.connect_to_gateway(gateway_info.recommended_shard_count)

    async def connect_to_gateway(self, shard_count=1):
        generation = self.generation
        for index in range(shard_count):
            self.sessions[index] = ShardSession(index, self, self.gateway_info.url, generation)
        await gather(*(session.connect() for session in self.sessions.values()))
        self.logger.info(f"Spawned {shard_count} shard(s)")

    async def disconnect(self):
        """
        Closes every shard without reconnecting and forgets all state.
        """
        self.disconnecting = True
        http = self.http
        for session in list(self.sessions.values()):
            try:
                await session.close()
            except Exception as e:
                self.show_throwable(e)
        self.reset()
        if http is not None:
            await http.close()
        self.exit_event.set()

    def get_my_info(self):
        return self.my_info

    @property
    def shard_count(self):
        return len(self.sessions)

    def is_ready(self):
        if not self.sessions or len(self.shards) != len(self.sessions):
            return False
        return all(shard.ready for shard in self.shards.values())

    def valid_server(self, guild_id):
        return self.state.valid_server(guild_id)

    def valid_channel(self, guild_id, channel_id):
        return self.state.valid_channel(guild_id, channel_id)

    # Sending
    async def send_shard_command(self, shard, opcode, payload, sequence=None, event_name=None):
        """
        Writes a command to a shard right away. Throttling is the caller's job.
        """
        record = self.shards.get(shard)
        if record is None or record.ws.closed:
            self.debug(f"Can't send opcode {opcode} to shard {shard}, it isn't connected")
            return False
        try:
            await record.ws.send_str(encode(opcode, payload, sequence, event_name))
        except (ClientError, ConnectionError, RuntimeError) as e:
            self.debug(f"Sending to shard {shard} failed: {e}")
            return False
        return True

    async def api_request(self, route, **kwargs):
        """
        Sends a REST request. Failures are reported through client.error and give back None.
        """
        if self.http is None:
            self.debug(f"Not connected, dropping {route!r}")
            return None
        try:
            return await self.http.request(route, **kwargs)
        except (HTTPException, ClientError, TimeoutError) as e:
            self.show_throwable(e)
            return None

    async def send_channel_message(self, guild_id, channel_id, text):
        if not self.valid_channel(guild_id, channel_id):
            return None
        return await self.send_person_channel_message(channel_id, text)

    async def send_person_message(self, person_id, text):
        binding = self.state.dm_channel(person_id) if self.reuse_dm_channels else None
        if binding is not None:
            self.state.touch(person_id)
            return await self.send_person_channel_message(binding.channel_id, text)

        data = await self.api_request(Route("POST", "/users/@me/channels"), json={"recipient_id": str(person_id)})
        if data is None:
            return None
        self.state.bind(person_id, data["id"])
        return await self.send_person_channel_message(data["id"], text)

    async def send_person_channel_message(self, channel_id, text):
        route = Route("POST", "/channels/{channel_id}/messages", channel_id=channel_id)
        return await self.api_request(route, json={"content": text})

    async def get_channel_messages(self, guild_id, channel_id):
        if not self.valid_channel(guild_id, channel_id):
            return None
        return await self.api_request(Route("GET", "/channels/{channel_id}/messages", channel_id=channel_id))

    def do_cleanup(self, now=None):
        """
        Drops DM channels nobody has used for a while, and deletes them on Discord's side too.
        """
        now = time() if now is None else now
        for binding in self.state.expired(now, self.dm_channel_ttl):
            self.state.unbind(binding.person_id)
            self.debug(f"Removing unused DM channel {binding.channel_id} for {binding.person_id}")
            self.spawn(self.api_request(Route("DELETE", "/channels/{channel_id}", channel_id=binding.channel_id)))

    # Internal handlers
    def shard_closed(self, shard, code=None, reason=None):
        self.debug(f"Shard {shard} closed ({code} - {reason})")
        if self.disconnecting:
            return
        session = self.sessions.get(shard)
        if session is None:
            return
        if code in AUTH_CLOSE_CODES:
            error = AuthenticationFailed(shard, code)
            self.info(str(error))
            self.show_throwable(error)
            return
        session.schedule_connect(self.reconnect_delay, "Reconnecting shard")

    def got_dispatch(self, shard, opcode, data):
        session = self.sessions.get(shard)
        if session is not None:
            session.handle_dispatch(data)

    def got_heartbeat(self, shard, opcode, data):
        self.debug(f"Got HB on shard {shard}", data)

    def got_heartbeat_ack(self, shard, opcode, data):
        self.debug(f"Got HB Ack on shard {shard}", data)

    def got_hello(self, shard, opcode, data):
        session = self.sessions.get(shard)
        if session is not None:
            session.handle_hello(data)

    def got_reconnect_request(self, shard, opcode, data):
        session = self.sessions.get(shard)
        if session is not None:
            session.send_identify()

    def got_invalid_session(self, shard, opcode, data):
        session = self.sessions.get(shard)
        if session is not None:
            session.send_identify()

    def handle_ready(self, shard, event, data):
        record = self.shards.get(shard)
        if record is not None:
            record.ready = True
        self.debug(f"Shard is ready: {shard}")
