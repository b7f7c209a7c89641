# guest_agent/errors.py
"""
Exceptions raised by the wire server protocol client.

Anything deriving from ProtocolError is fatal to the agent. Soft failures
(non-2xx answers) are not exceptions; see client.WireResponse.
"""


class ProtocolError(Exception):
    """Base class for fatal protocol failures"""


class ConnectivityError(ProtocolError):
    """The endpoint could not be reached (timeout, refused, unreachable)"""


class TransportError(ProtocolError):
    """Non-connectivity transport failure (TLS, proxy, malformed response)"""


class GoalStateError(ProtocolError):
    """The goal state document could not be retrieved or parsed"""
