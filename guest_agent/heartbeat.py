# guest_agent/heartbeat.py
"""
Heartbeat Scheduler

Runs after bootstrap until stopped: every interval it sends one telemetry
event, cycling HeartBeat -> WAStart -> Provision -> AgentStatus.

Transport failures that survive the client's single retry propagate and end
the loop; non-2xx answers are logged by the client and the loop goes on.
"""

import logging
import threading
from typing import Callable, Optional

from .client import WireResponse, WireServerClient
from .collectors.host_info import SystemStats, collect_system_stats
from .goal_state import GoalState
from .reports import EventKind, build_telemetry_event, event_kind_for_tick
from .settings import AgentSettings

logger = logging.getLogger('guest-agent.heartbeat')


class HeartbeatScheduler:
    """
    Sleep -> send -> repeat, on a single thread

    The stop event is the cancellation token: the interval wait returns as
    soon as it is set.
    """

    def __init__(
        self,
        client: WireServerClient,
        goal_state: GoalState,
        settings: AgentSettings,
        stop_event: Optional[threading.Event] = None,
        system_stats: Callable[[], SystemStats] = collect_system_stats,
    ):
        self.client = client
        self.goal_state = goal_state
        self.settings = settings
        self.stop_event = stop_event or threading.Event()
        self.system_stats = system_stats
        self.counter = 1

    @property
    def next_kind(self) -> EventKind:
        return event_kind_for_tick(self.counter)

    def tick(self) -> WireResponse:
        """Build and dispatch the event for the current counter, then advance it"""
        kind = self.next_kind
        stats = self.system_stats() if kind is EventKind.HEARTBEAT else None

        event = build_telemetry_event(
            kind,
            self.goal_state,
            stats,
            version=self.settings.version_string,
            provider_id=self.settings.AGENT_NAME,
        )

        response = self.client.send_telemetry_event(event, self.counter)
        self.counter += 1
        return response

    def run(self):
        """Loop until the stop event is set"""
        logger.info(
            f"Starting continuous heartbeat loop every {self.settings.HEARTBEAT_INTERVAL}s "
            "(send SIGINT/SIGTERM to stop)..."
        )

        while not self.stop_event.wait(self.settings.HEARTBEAT_INTERVAL):
            self.tick()

        logger.info(f"Heartbeat loop stopped after {self.counter - 1} events")

    def stop(self):
        self.stop_event.set()
