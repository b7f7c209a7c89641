"""
Guest Agent

Minimal guest agent for the platform wire server (168.63.129.16).

- Fetches the goal state and acknowledges health
- Announces startup telemetry and publishes the aggregate status blob
- Sends cyclic heartbeat/telemetry events until stopped
"""

__version__ = "0.1.0"
__all__ = ["GuestAgent"]

from .agent import GuestAgent
