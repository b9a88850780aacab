"""
Created by Epic at 9/1/20
"""

from asyncio import iscoroutine, get_running_loop
import logging

__all__ = ("EventEmitter",)


class EventEmitter:
    """
    A registry of handlers keyed by event name. The client keeps two of these: one for its own wiring that users
    can't touch and a public one that users subscribe to.

    Handlers may be plain functions or coroutine functions. Coroutines are scheduled on the running loop.
    Nothing a handler raises ever leaves :meth:`emit`; it's handed to ``on_error`` instead.

    Parameters
    ----------
    on_error: Callable[[BaseException], Any]
        Called with any exception raised by a handler.
    """
    def __init__(self, on_error):
        self.logger = logging.getLogger("relaycord.dispatcher")
        self.on_error = on_error

        # A dict of the event name and a list of handlers to execute once a event is emitted
        self.event_handlers = {}

    def emit(self, event_name, *args):
        """
        Calls every handler registered to this event_name, in registration order.

        Parameters
        ----------
        event_name: str
            The name of the event.
        *args: Any
            Positional arguments to call the handlers with.
        """
        for handler in list(self.event_handlers.get(event_name, [])):
            try:
                result = handler(*args)
            except Exception as e:
                self.on_error(e)
                continue
            if iscoroutine(result):
                try:
                    loop = get_running_loop()
                except RuntimeError as e:
                    result.close()
                    self.on_error(e)
                    continue
                task = loop.create_task(result)
                task.add_done_callback(self._task_done)

    def _task_done(self, task):
        if task.cancelled():
            return
        exception = task.exception()
        if exception is not None:
            self.on_error(exception)

    def on(self, event_name, func):
        """
        Register a handler for a specific event.

        Parameters
        ----------
        event_name: str
            The event to listen to.
        func: Callable[..., Any]
            The function that will be called when the event is emitted.
        """
        event_handlers = self.event_handlers.get(event_name, [])
        event_handlers.append(func)
        self.event_handlers[event_name] = event_handlers

    def remove_listener(self, event_name, func):
        event_handlers = self.event_handlers.get(event_name, [])
        if func in event_handlers:
            event_handlers.remove(func)

    def listeners(self, event_name):
        return list(self.event_handlers.get(event_name, []))
