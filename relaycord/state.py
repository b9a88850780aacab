"""
Created by Epic at 12/4/20

A best-effort mirror of what the gateway has told us so far. It's built purely from dispatched events and is
never asked for anything remotely, so a fresh session starts out empty until GUILD_CREATEs arrive.
"""
from logging import getLogger
from time import time

from .opcodes import ChannelType

__all__ = ("Channel", "Guild", "DMChannelBinding", "GatewayInfo", "StateMirror", "IGNORED_EVENTS")

logger = getLogger("relaycord.state")

# Events the gateway sends that we know about but don't keep any state for
IGNORED_EVENTS = (
    "GUILD_UPDATE", "GUILD_ROLE_CREATE", "GUILD_ROLE_UPDATE", "GUILD_ROLE_DELETE",
    "GUILD_MEMBER_ADD", "GUILD_MEMBERS_CHUNK", "GUILD_MEMBER_UPDATE", "GUILD_MEMBER_REMOVE",
    "GUILD_BAN_ADD", "GUILD_BAN_REMOVE", "GUILD_EMOJIS_UPDATE", "GUILD_INTEGRATIONS_UPDATE",
    "CHANNEL_UPDATE", "CHANNEL_PINS_UPDATE",
    "MESSAGE_CREATE", "MESSAGE_UPDATE", "MESSAGE_DELETE", "MESSAGE_DELETE_BULK",
    "MESSAGE_REACTION_ADD", "MESSAGE_REACTION_REMOVE", "MESSAGE_REACTION_REMOVE_ALL",
    "TYPING_START", "PRESENCE_UPDATE", "USER_UPDATE", "VOICE_STATE_UPDATE", "VOICE_SERVER_UPDATE",
    "WEBHOOKS_UPDATE", "MESSAGE_ACK", "RESUMED",
)


class Channel:
    __slots__ = ("id", "name")

    def __init__(self, channel_id, name):
        self.id = channel_id
        self.name = name

    def __repr__(self):
        return f"<Channel id={self.id} name={self.name!r}>"


class Guild:
    __slots__ = ("id", "name", "shard", "channels")

    def __init__(self, guild_id, name, shard, channels=None):
        self.id = guild_id
        self.name = name
        self.shard = shard
        self.channels = channels if channels is not None else {}

    def __repr__(self):
        return f"<Guild id={self.id} name={self.name!r} shard={self.shard} channels={len(self.channels)}>"


class DMChannelBinding:
    __slots__ = ("person_id", "channel_id", "last_used")

    def __init__(self, person_id, channel_id, last_used):
        self.person_id = person_id
        self.channel_id = channel_id
        self.last_used = last_used

    def __repr__(self):
        return f"<DMChannelBinding person={self.person_id} channel={self.channel_id}>"


class GatewayInfo:
    """
    Where to connect and how many shards Discord recommends. Fetched once per connect.
    """
    __slots__ = ("url", "shards")

    def __init__(self, url, shards=None):
        self.url = url
        self.shards = shards

    @classmethod
    def from_payload(cls, data):
        """
        :return: a GatewayInfo, or None if the response doesn't look like gateway info
        """
        if not isinstance(data, dict) or "url" not in data:
            return None
        shards = data.get("shards")
        return cls(data["url"].rstrip("/"), int(shards) if shards is not None else None)

    @property
    def recommended_shard_count(self):
        return self.shards or 1


def _is_type(data, channel_type):
    try:
        return int(data.get("type")) == channel_type
    except (TypeError, ValueError):
        return False


class StateMirror:
    """
    Guilds, their text channels and the DM channels we've seen, keyed by id.
    :param info: called with a human readable line whenever something gets added or removed
    """
    def __init__(self, info=None):
        self.guilds = {}
        self.dm_channels = {}
        self.info = info or (lambda *args: None)

    def reset(self):
        self.guilds.clear()
        self.dm_channels.clear()

    # Lookups
    def valid_server(self, guild_id):
        return str(guild_id) in self.guilds

    def valid_channel(self, guild_id, channel_id):
        guild = self.guilds.get(str(guild_id))
        return guild is not None and str(channel_id) in guild.channels

    def dm_channel(self, person_id):
        return self.dm_channels.get(str(person_id))

    def bind(self, person_id, channel_id, now=None):
        """
        Remembers the DM channel for a person. An existing binding is left alone.
        :return: whether a new binding was created
        """
        person_id = str(person_id)
        if person_id in self.dm_channels:
            return False
        self.dm_channels[person_id] = DMChannelBinding(person_id, str(channel_id), time() if now is None else now)
        return True

    def touch(self, person_id, now=None):
        binding = self.dm_channels.get(str(person_id))
        if binding is not None:
            binding.last_used = time() if now is None else now
        return binding

    def unbind(self, person_id):
        return self.dm_channels.pop(str(person_id), None)

    def expired(self, now, ttl):
        """
        The DM bindings that haven't been used for more than ``ttl`` seconds.
        """
        return [binding for binding in self.dm_channels.values() if binding.last_used < now - ttl]

    # Event handlers, all called as (shard, event_name, data)
    def noop(self, shard, event, data):
        pass

    def handle_guild_create(self, shard, event, data):
        guild = Guild(str(data["id"]), data.get("name", ""), shard)
        self.info(f"Found new server on shard {shard}: {guild.name} ({guild.id})")

        for channel in data.get("channels", []):
            if _is_type(channel, ChannelType.GUILD_TEXT):
                guild.channels[str(channel["id"])] = Channel(str(channel["id"]), channel.get("name", ""))
                self.info(f"\tChannel: {channel.get('name')} ({channel['id']})")

        self.guilds[guild.id] = guild

    def handle_guild_delete(self, shard, event, data):
        guild = self.guilds.pop(str(data["id"]), None)
        if guild is not None:
            self.info(f"Removed server on shard {shard}: {guild.name} ({guild.id})")

    def handle_channel_create(self, shard, event, data):
        guild = self.guilds.get(str(data.get("guild_id")))
        if _is_type(data, ChannelType.GUILD_TEXT) and guild is not None:
            channel_id = str(data["id"])
            if channel_id in guild.channels:
                return
            guild.channels[channel_id] = Channel(channel_id, data.get("name", ""))
            self.info(f"Found new channel for server {guild.name} ({guild.id}) on shard {shard}: "
                      f"{data.get('name')} ({channel_id})")
        elif _is_type(data, ChannelType.DM):
            person = data["recipients"][0]
            if self.bind(person["id"], data["id"]):
                self.info(f"Found new channel for person {person.get('username')} ({person['id']}) on shard "
                          f"{shard}: {data['id']}")
        else:
            logger.debug(f"Ignoring new channel on shard {shard}: {data}")

    def handle_channel_delete(self, shard, event, data):
        guild = self.guilds.get(str(data.get("guild_id")))
        if _is_type(data, ChannelType.GUILD_TEXT) and guild is not None:
            channel = guild.channels.pop(str(data["id"]), None)
            if channel is not None:
                self.info(f"Removed channel on server {guild.name} ({guild.id}) on shard {shard}: "
                          f"{channel.name} ({channel.id})")
        elif _is_type(data, ChannelType.DM):
            person = data["recipients"][0]
            if self.unbind(person["id"]) is not None:
                self.info(f"Removed channel for person {person.get('username')} ({person['id']}) on shard "
                          f"{shard}: {data['id']}")
        else:
            logger.debug(f"Ignoring removed channel on shard {shard}: {data}")
