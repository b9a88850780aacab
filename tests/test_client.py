import asyncio
import time

import pytest

from relaycord import AlreadyConnected, Client, HTTPException, InvalidToken
from relaycord.opcodes import Opcode

from conftest import FakeHttp, FakeWebSocket, Recorder, attach, settle


@pytest.fixture
def gateway(monkeypatch):
    http = FakeHttp()
    http.responses[("GET", "/users/@me")] = {"id": "99", "username": "relay"}
    http.responses[("GET", "/gateway/bot")] = {"url": "wss://gateway.test", "shards": 2}
    monkeypatch.setattr("relaycord.client.HttpClient", lambda token, is_bot: http)
    return http


def hello(session):
    session.handle_frame(session.shard, '{"op": 10, "d": {"heartbeat_interval": 41250}}')


def ready(session):
    session.handle_frame(session.shard, '{"op": 0, "s": 1, "t": "READY", "d": {"session_id": "x"}}')


class TestConnect:
    @pytest.mark.asyncio
    async def test_two_shard_handshake(self, gateway):
        gateway.sockets.extend([FakeWebSocket(), FakeWebSocket()])
        client = Client("1", "secret", "token")

        await client.connect()

        assert client.get_my_info()["username"] == "relay"
        assert client.shard_count == 2
        assert sorted(client.shards) == [0, 1]
        assert not client.is_ready()

        for index in (0, 1):
            hello(client.sessions[index])
        assert len(client.throttle) == 2

        await client.throttle.drain_one()
        first = client.shards[0].ws.sent
        assert [(payload["op"], payload["d"]["shard"]) for payload in first] == [(Opcode.IDENTIFY, [0, 2])]
        assert client.shards[1].ws.sent == []

        await client.throttle.drain_one()
        assert client.shards[1].ws.sent[0]["d"]["shard"] == [1, 2]

        ready(client.sessions[0])
        assert not client.is_ready()
        ready(client.sessions[1])
        assert client.is_ready()

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_user_accounts_use_plain_gateway(self, monkeypatch):
        http = FakeHttp()
        http.responses[("GET", "/gateway")] = {"url": "wss://gateway.test"}
        http.sockets.append(FakeWebSocket())
        monkeypatch.setattr("relaycord.client.HttpClient", lambda token, is_bot: http)
        client = Client("1", "secret", "token", is_bot=False)

        await client.connect()

        assert client.shard_count == 1
        assert http.calls("GET", "/gateway")
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_already_connected(self, gateway):
        gateway.sockets.extend([FakeWebSocket(), FakeWebSocket()])
        client = Client("1", "secret", "token")
        await client.connect()

        with pytest.raises(AlreadyConnected):
            await client.connect()
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_missing_token(self):
        with pytest.raises(InvalidToken):
            await Client("1", "secret", "").connect()

    @pytest.mark.asyncio
    async def test_malformed_gateway_info(self, gateway):
        gateway.responses[("GET", "/gateway/bot")] = {"message": "nope"}
        client = Client("1", "secret", "token")
        message = Recorder()
        client.on("client.message", message)

        await client.connect()

        assert client.sessions == {}
        assert message.calls[0][1] == "Unknown response from API"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_rest_failure_stalls_quietly(self, gateway):
        gateway.responses[("GET", "/gateway/bot")] = HTTPException(None, "server error")
        client = Client("1", "secret", "token")
        errors = Recorder()
        client.on("client.error", errors)

        await client.connect()

        assert client.sessions == {}
        assert isinstance(errors.calls[0][1], HTTPException)
        await client.disconnect()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_closes_everything_without_reconnecting(self, gateway):
        sockets = [FakeWebSocket(), FakeWebSocket()]
        gateway.sockets.extend(sockets)
        client = Client("1", "secret", "token")
        client.reconnect_delay = 0
        await client.connect()
        for index in (0, 1):
            hello(client.sessions[index])
            ready(client.sessions[index])

        await client.disconnect()
        await settle()

        assert all(sock.closed for sock in sockets)
        assert gateway.ws_urls == ["wss://gateway.test/?v=8&encoding=json"] * 2
        assert gateway.closed
        assert not client.is_ready()
        assert client.shards == {} and client.sessions == {}
        assert not client.throttle.loop.running
        assert client.exit_event.is_set()

    @pytest.mark.asyncio
    async def test_disconnect_leaves_no_pending_tasks(self, gateway):
        gateway.responses[("GET", "/gateway/bot")] = {"url": "wss://gateway.test", "shards": 1}
        sock = FakeWebSocket()
        gateway.sockets.append(sock)
        client = Client("1", "secret", "token")
        await client.connect()
        sock.feed({"op": 10, "d": {"heartbeat_interval": 41250}})
        await settle()
        assert client.shards[0].heartbeat_task is not None

        await client.disconnect()
        await settle(10)

        pending = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
        assert pending == []

    @pytest.mark.asyncio
    async def test_reconnect_timer_from_before_disconnect_is_dropped(self, client, fake_http):
        client.reconnect_delay = 0
        session, shard = attach(client)
        client.shard_closed(0, 1006, None)

        client.disconnecting = False
        client.generation = "next generation"
        await settle()

        assert fake_http.ws_urls == []


class TestMessages:
    @pytest.fixture
    def known_channel(self, client):
        client.state.handle_guild_create(0, "GUILD_CREATE", {
            "id": "g1", "name": "server", "channels": [{"id": "c1", "name": "general", "type": 0}]
        })
        return client

    def test_validity_lookups(self, known_channel):
        assert known_channel.valid_server("g1")
        assert known_channel.valid_channel("g1", "c1")
        assert not known_channel.valid_channel("g1", "c2")
        assert not known_channel.valid_channel("g2", "c1")

    @pytest.mark.asyncio
    async def test_invalid_channel_sends_nothing(self, known_channel, fake_http):
        errors = Recorder()
        known_channel.on("client.error", errors)

        assert await known_channel.send_channel_message("g1", "c2", "hello") is None

        assert fake_http.requests == []
        assert errors.calls == []

    @pytest.mark.asyncio
    async def test_valid_channel_posts(self, known_channel, fake_http):
        await known_channel.send_channel_message("g1", "c1", "hello")

        assert fake_http.requests == [("POST", "/channels/c1/messages", {"json": {"content": "hello"}})]

    @pytest.mark.asyncio
    async def test_get_channel_messages(self, known_channel, fake_http):
        fake_http.responses[("GET", "/channels/c1/messages")] = [{"id": "m1"}]

        assert await known_channel.get_channel_messages("g1", "c1") == [{"id": "m1"}]
        assert await known_channel.get_channel_messages("g1", "c2") is None

    @pytest.mark.asyncio
    async def test_person_message_opens_a_channel_every_time(self, client, fake_http):
        fake_http.responses[("POST", "/users/@me/channels")] = {"id": "d1"}

        await client.send_person_message("p1", "one")
        await client.send_person_message("p1", "two")

        assert len(fake_http.calls("POST", "/users/@me/channels")) == 2
        assert len(fake_http.calls("POST", "/channels/d1/messages")) == 2
        assert client.state.dm_channel("p1").channel_id == "d1"

    @pytest.mark.asyncio
    async def test_person_message_reuses_known_channel_when_enabled(self, client, fake_http):
        client.reuse_dm_channels = True
        fake_http.responses[("POST", "/users/@me/channels")] = {"id": "d1"}

        await client.send_person_message("p1", "one")
        client.state.dm_channel("p1").last_used = 0
        await client.send_person_message("p1", "two")

        assert len(fake_http.calls("POST", "/users/@me/channels")) == 1
        assert len(fake_http.calls("POST", "/channels/d1/messages")) == 2
        assert client.state.dm_channel("p1").last_used > 0

    @pytest.mark.asyncio
    async def test_failed_dm_open_sends_nothing(self, client, fake_http):
        fake_http.responses[("POST", "/users/@me/channels")] = HTTPException(None, "blocked")
        errors = Recorder()
        client.on("client.error", errors)

        assert await client.send_person_message("p1", "hi") is None

        assert len(errors.calls) == 1
        assert fake_http.calls("POST", "/channels/d1/messages") == []


class TestCleanup:
    @pytest.mark.asyncio
    async def test_old_dm_channels_are_deleted(self, client, fake_http):
        now = time.time()
        client.state.bind("old", "d-old", now=now - 400)
        client.state.bind("recent", "d-recent", now=now - 100)

        client.do_cleanup(now)
        await settle()

        assert client.state.dm_channel("old") is None
        assert client.state.dm_channel("recent") is not None
        assert [request[1] for request in fake_http.requests] == ["/channels/d-old"]
        assert fake_http.requests[0][0] == "DELETE"

    @pytest.mark.asyncio
    async def test_failed_delete_still_drops_binding(self, client, fake_http):
        fake_http.responses[("DELETE", "/channels/d-old")] = HTTPException(None, "gone")
        errors = Recorder()
        client.on("client.error", errors)
        client.state.bind("old", "d-old", now=0)

        client.do_cleanup(1000)
        await settle()

        assert client.state.dm_channel("old") is None
        assert len(errors.calls) == 1
