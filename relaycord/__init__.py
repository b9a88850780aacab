"""
Created by Epic at 9/1/20

Sharded Discord gateway client with a local mirror of guilds, channels and DM channels
"""
from .client import Client
from .exceptions import HTTPException, Forbidden, NotFound, Unauthorized, LoginException, InvalidToken, \
    AlreadyConnected, GatewayException, AuthenticationFailed
from .opcodes import Opcode, CloseCode
from .values import version as __version__

__all__ = ("__version__", "Client", "HTTPException", "Forbidden", "NotFound",
           "Unauthorized", "LoginException", "InvalidToken", "AlreadyConnected",
           "GatewayException", "AuthenticationFailed", "Opcode", "CloseCode"
           )
