"""
Created by Epic at 12/3/20
"""
from asyncio import current_task, get_running_loop, sleep, iscoroutine
from logging import getLogger
from secrets import token_hex

__all__ = ("new_token", "FencedLoop")


def new_token():
    """
    A fresh fence token. Timers capture the token they were scheduled with and do nothing once it's been replaced.
    """
    return token_hex(16)


class FencedLoop:
    """
    Calls ``callback`` every ``period`` seconds until stopped or restarted.
    Restarting generates a new token so the previous loop exits on its next wakeup instead of running twice.

    Parameters
    ----------
    period: float
        Seconds between ticks.
    callback: Callable[[], Any]
        Called on every tick. May return an awaitable.
    on_error: Callable[[BaseException], Any]
        Called with anything the callback raises. The loop keeps running.
    """
    def __init__(self, period, callback, on_error, *, name="loop"):
        self.period = period
        self.callback = callback
        self.on_error = on_error
        self.token = None
        self.task = None
        self.logger = getLogger(f"relaycord.timers.{name}")

    @property
    def running(self):
        return self.token is not None

    def start(self):
        self._cancel_task()
        self.token = new_token()
        self.task = get_running_loop().create_task(self._run(self.token))
        return self.token

    def stop(self):
        self.token = None
        self._cancel_task()

    def _cancel_task(self):
        # A loop stopping itself from inside a tick just exits on the token check
        if self.task is not None and self.task is not current_task():
            self.task.cancel()
        self.task = None

    async def _run(self, token):
        while self.token == token:
            await sleep(self.period)
            if self.token != token:
                self.logger.debug("Superseded, exiting")
                return
            await self.tick()

    async def tick(self):
        try:
            result = self.callback()
            if iscoroutine(result):
                await result
        except Exception as e:
            self.on_error(e)
