import asyncio
from collections import namedtuple

import pytest
from aiohttp import WSMsgType
from ujson import dumps, loads

from relaycord import Client
from relaycord.shard import Shard, ShardSession
from relaycord.state import GatewayInfo

Message = namedtuple("Message", "type data extra")


class FakeWebSocket:
    """Stands in for aiohttp's ClientWebSocketResponse."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self.close_calls = 0
        self.inbox = asyncio.Queue()

    async def send_str(self, data):
        if self.closed:
            raise ConnectionResetError("socket is closed")
        self.sent.append(loads(data))

    async def receive(self):
        return await self.inbox.get()

    def feed(self, payload):
        self.inbox.put_nowait(Message(WSMsgType.TEXT, dumps(payload), None))

    def feed_close(self, code, reason=""):
        self.close_code = code
        self.inbox.put_nowait(Message(WSMsgType.CLOSE, code, reason))

    async def close(self, code=1000):
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        if self.close_code is None:
            self.close_code = code
        self.inbox.put_nowait(Message(WSMsgType.CLOSED, None, None))


class FakeHttp:
    """Stands in for relaycord.http.HttpClient. Responses are keyed by (method, path)."""

    def __init__(self):
        self.responses = {}
        self.requests = []
        self.sockets = []
        self.ws_urls = []
        self.closed = False

    async def request(self, route, **kwargs):
        self.requests.append((route.method, route.path, kwargs))
        response = self.responses.get((route.method, route.path))
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response

    async def create_ws(self, url, *, compression=0):
        self.ws_urls.append(url)
        sock = self.sockets.pop(0)
        if isinstance(sock, Exception):
            raise sock
        return sock

    async def close(self):
        self.closed = True

    def calls(self, method, path):
        return [request for request in self.requests if request[0] == method and request[1] == path]


async def settle(times=5):
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def client(fake_http):
    client = Client("1234", "secret", "token", debug=True)
    client.http = fake_http
    client.generation = "generation"
    client.gateway_info = GatewayInfo("wss://gateway.test", 2)
    return client


def attach(client, index=0, ws=None):
    """Puts a connected shard on the client without going through connect()."""
    ws = ws or FakeWebSocket()
    session = ShardSession(index, client, client.gateway_info.url, client.generation)
    client.sessions[index] = session
    client.shards[index] = Shard(index, ws)
    return session, client.shards[index]


class Recorder:
    """A public listener that remembers what it was called with."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)
