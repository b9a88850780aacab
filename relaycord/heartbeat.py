"""
Created by Epic at 12/3/20
"""
from asyncio import current_task, get_running_loop, sleep
from logging import getLogger

from .opcodes import Opcode
from .timers import new_token

__all__ = ("HeartbeatScheduler",)


class HeartbeatScheduler:
    """
    Keeps one shard alive. Every heartbeat schedules the next one itself with a fresh token, so a timer left over
    from an earlier HELLO or an earlier connection notices it's been replaced and does nothing.
    https://discord.com/developers/docs/topics/gateway#heartbeat
    :param client: the relaycord.Client owning the shard records
    :param index: the shard index this scheduler belongs to
    """
    def __init__(self, client, index):
        self.client = client
        self.index = index
        self.logger = getLogger(f"relaycord.shard.{index}")

    @property
    def shard(self):
        return self.client.shards.get(self.index)

    def schedule(self):
        """
        Starts the timer for the next heartbeat.
        :return: the fence token of the new timer, or None if there's nothing to schedule
        """
        shard = self.shard
        if shard is None or shard.heartbeat_interval is None:
            return None
        self._cancel_task(shard)
        token = new_token()
        shard.heartbeat_token = token
        shard.heartbeat_task = get_running_loop().create_task(self._wait(token, shard.heartbeat_interval / 1000))
        return token

    def cancel(self, shard):
        """
        Stops the heartbeat of a connection that has closed.
        """
        shard.heartbeat_token = None
        self._cancel_task(shard)

    @staticmethod
    def _cancel_task(shard):
        # The running heartbeat reschedules itself, it must not cancel its own task
        task = shard.heartbeat_task
        if task is not None and task is not current_task():
            task.cancel()
        shard.heartbeat_task = None

    async def _wait(self, token, delay):
        await sleep(delay)
        try:
            await self.fire(token)
        except Exception as e:
            self.client.show_throwable(e)

    async def fire(self, token):
        """
        Runs one heartbeat tick.
        :return: False if the token was stale, True otherwise
        """
        shard = self.shard
        if shard is None or shard.heartbeat_token != token:
            return False

        if shard.awaiting_ack:
            self.client.debug(f"Shard connection appears to be dead: {self.index}")
            self.cancel(shard)
            await shard.ws.close()
            return True

        self.client.debug(f"Sending heartbeat for shard: {self.index}")
        shard.awaiting_ack = True
        await self.client.send_shard_command(self.index, Opcode.HEARTBEAT, shard.sequence)
        if self.shard is shard and shard.heartbeat_token == token:
            self.schedule()
        return True
