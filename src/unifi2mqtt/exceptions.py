"""Exception hierarchy for the bridge.

Controller errors are raised by the API client and handled by the components
that call it; none of them is fatal to the process once it is running.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ControllerError(BridgeError):
    """Base class for errors talking to the UniFi controller."""


class ControllerConnectionError(ControllerError):
    """Controller unreachable or event stream dropped.

    Attributes:
        reason: Specific failure reason

    """

    def __init__(self, reason: str) -> None:
        """Initialize connection error with reason."""
        self.reason: str = reason
        super().__init__(f"Controller connection error: {reason}")


class ControllerAuthError(ControllerError):
    """Login rejected by the controller (bad credentials or locked account)."""

    def __init__(self, username: str, status: int | None = None) -> None:
        """Initialize auth error with the rejected username and HTTP status."""
        self.username: str = username
        self.status: int | None = status
        super().__init__(f"Controller login failed for user '{username}' (status: {status})")


class ControllerRequestError(ControllerError):
    """A controller API call was rejected.

    Raised when:
    - The HTTP response is not successful
    - The response envelope reports ``meta.rc != "ok"``
    - The response body is not the expected envelope

    Attributes:
        endpoint: Site-relative API path, e.g. ``rest/wlanconf``
        message: Controller ``meta.msg`` or HTTP reason
        status: HTTP status code, when known

    """

    def __init__(self, endpoint: str, message: str, status: int | None = None) -> None:
        """Initialize request error."""
        self.endpoint: str = endpoint
        self.message: str = message
        self.status: int | None = status
        super().__init__(f"Controller request '{endpoint}' failed: {message} (status: {status})")


class MalformedPayloadError(BridgeError):
    """An inbound MQTT payload could not be decoded.

    Attributes:
        topic: Topic the payload arrived on
        payload: Raw payload bytes

    """

    def __init__(self, topic: str, payload: bytes, reason: str) -> None:
        """Initialize malformed payload error."""
        self.topic: str = topic
        self.payload: bytes = payload
        super().__init__(f"Malformed payload on {topic}: {reason}")
