"""
Created by Epic at 9/1/20
Inspiration taken from discord.py
"""

from aiohttp import ClientSession, __version__ as aiohttp_version, ClientWebSocketResponse
import logging
from sys import version_info as python_version

from ujson import loads

from .values import API_BASE, USER_AGENT
from .exceptions import Forbidden, NotFound, HTTPException, Unauthorized

__all__ = ("Route", "HttpClient")


class Route:
    """
    Describes an API route. Used by HttpClient to send requests. For a list of routes and their parameters,
    refer to https://discord.com/developers/docs/reference.
    Parameters
    ----------
    method: str
        Standard HTTPS method.
    route: str
        Discord API route.
    parameters: Dict[str, Any]
        Parameters to format the route with.
    """
    def __init__(self, method, route, **parameters):
        self.method = method
        self.path = route.format(**parameters)

    def __repr__(self):
        return f"<Route {self.method} {self.path}>"


class HttpClient:
    """
    An HTTP client that talks to the Discord REST API.

    Parameters
    ----------
    token: str
        A Discord token.
    is_bot: bool
        Whether the token belongs to a bot account. Picks the Authorization scheme.
    **baseuri: str
        Discord's API URI.
    """
    def __init__(self, token, is_bot=True, *, baseuri=API_BASE):
        self.baseuri = baseuri
        self.token = token
        self.is_bot = is_bot
        self.session = None
        self.logger = logging.getLogger("relaycord.http")

        self.default_headers = {
            "Authorization": f"Bot {self.token}" if is_bot else self.token,
            "User-Agent": f"{USER_AGENT} "
                          f"Python/{python_version[0]}.{python_version[1]} "
                          f"aiohttp/{aiohttp_version}"
        }

    def _ensure_session(self):
        if self.session is None or self.session.closed:
            self.session = ClientSession()
        return self.session

    async def create_ws(self, url, *, compression=0) -> ClientWebSocketResponse:
        """
        Opens a websocket to the specified url.

        Parameters
        ----------
        url: str
            The URL that the websocket will connect to.
        compression: int
            Whether to enable compression.
        """
        options = {
            "max_msg_size": 0,
            "timeout": 60,
            "autoclose": False,
            "headers": {
                "User-Agent": self.default_headers["User-Agent"]
            },
            "compress": compression
        }
        return await self._ensure_session().ws_connect(url, **options)

    async def request(self, route: Route, **kwargs):
        """
        Sends a request to the Discord API and returns the decoded body.

        Parameters
        ----------
        route: Route
            The Discord API route to send a request to.
        **kwargs: Dict[str, Any]
            The parameters being passed to aiohttp.ClientSession.request
        """
        kwargs["headers"] = {**self.default_headers, **kwargs.get("headers", {})}
        self.logger.debug("%s %s", route.method, route.path)

        async with self._ensure_session().request(route.method, self.baseuri + route.path, **kwargs) as r:
            if r.status == 401:
                raise Unauthorized(r)
            elif r.status == 403:
                raise Forbidden(r, await r.text())
            elif r.status == 404:
                raise NotFound(r)
            elif r.status >= 300:
                raise HTTPException(r, await r.text())

            if r.status == 204:
                return None
            body = await r.text()
            if not body:
                return None
            return loads(body)

    async def close(self):
        if self.session is not None:
            await self.session.close()
