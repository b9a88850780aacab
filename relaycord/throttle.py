"""
Created by Epic at 11/24/20
"""
from collections import deque
from asyncio import iscoroutine
from logging import getLogger

from .timers import FencedLoop

__all__ = ("ShardCommand", "OutboundThrottleQueue")

logger = getLogger("relaycord.throttle")


class ShardCommand:
    """
    A gateway command waiting to be written to a shard.
    """
    __slots__ = ("shard", "opcode", "payload", "sequence", "event_name")

    def __init__(self, shard, opcode, payload, sequence=None, event_name=None):
        self.shard = shard
        self.opcode = opcode
        self.payload = payload
        self.sequence = sequence
        self.event_name = event_name

    def __repr__(self):
        return f"<ShardCommand shard={self.shard} op={self.opcode}>"


class OutboundThrottleQueue:
    """
    A single slow lane shared by every shard. One entry leaves every ``period`` seconds, in the order it was queued.
    IDENTIFYs go through here so we never send more than one per tick no matter how many shards there are.

    Parameters
    ----------
    send: Callable[[int, int, Any, Optional[int], Optional[str]], Awaitable]
        Writes a command to a shard, usually Client.send_shard_command.
    period: float
        Seconds between drains.
    on_error: Callable[[BaseException], Any]
        Receives anything raised while executing an entry.
    """
    def __init__(self, send, period, on_error):
        self.send = send
        self.queue = deque()
        self.on_error = on_error
        self.loop = FencedLoop(period, self.drain_one, on_error, name="throttle")

    def __len__(self):
        return len(self.queue)

    def enqueue(self, entry):
        """
        Queues a ShardCommand or a zero-argument callable.
        """
        if not isinstance(entry, ShardCommand) and not callable(entry):
            raise TypeError("Throttle entries must be a ShardCommand or callable")
        self.queue.append(entry)
        logger.debug(f"Queued {entry!r}, {len(self.queue)} waiting")

    def start(self):
        return self.loop.start()

    def stop(self):
        self.loop.stop()
        self.queue.clear()

    async def drain_one(self):
        """
        Executes the oldest entry, if any.
        """
        if not self.queue:
            return
        entry = self.queue.popleft()
        try:
            if isinstance(entry, ShardCommand):
                await self.send(entry.shard, entry.opcode, entry.payload, entry.sequence, entry.event_name)
            else:
                result = entry()
                if iscoroutine(result):
                    await result
        except Exception as e:
            self.on_error(e)
