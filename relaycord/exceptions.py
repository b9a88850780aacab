"""
Created by Epic at 9/1/20
"""


class HTTPException(Exception):
    """
    Exception that's thrown when an HTTP request operation fails.
    """

    def __init__(self, request, data):
        self.request = request
        self.data = data
        super().__init__(data)


class Forbidden(HTTPException):
    """
    Exception that's thrown for when status code 403 occurs.

    Subclass of :exc:`HTTPException`
    """
    pass


class NotFound(HTTPException):
    """
    Exception that's thrown when status code 404 occurs.

    Subclass of :exc:`HTTPException`
    """

    def __init__(self, request):
        self.request = request
        self.data = None
        Exception.__init__(self, "The selected resource was not found")


class Unauthorized(HTTPException):
    """
    Exception that's thrown when status code 401 occurs.

    Subclass of :exc:`HTTPException`
    """

    def __init__(self, request):
        self.request = request
        self.data = None
        Exception.__init__(self, "You are not authorized to view this resource")


class LoginException(Exception):
    """
    Base exception thrown when an issue occurs during login attempts.
    """
    pass


class InvalidToken(LoginException):
    """
    Exception that's thrown when an attempt to login with invalid token is made.
    """

    def __init__(self):
        super().__init__("Invalid token provided.")


class AlreadyConnected(LoginException):
    """
    Exception that's thrown when connect is called on a client that is already connected.
    """

    def __init__(self):
        super().__init__("Already connected.")


class GatewayException(Exception):
    """
    Base exception that's thrown whenever a gateway error occurs.
    """
    pass


class AuthenticationFailed(GatewayException):
    """
    The gateway closed a shard because the token was missing or invalid. The shard will not be reconnected.
    """
    def __init__(self, shard, code):
        self.shard = shard
        self.code = code
        super().__init__(f"Error connecting shard {shard} - authentication error ({code}) - not attempting to "
                         f"reconnect.")
