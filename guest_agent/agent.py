#!/usr/bin/env python3
# guest_agent/agent.py
"""
Guest Agent Daemon
Bootstraps against the wire server, then emits heartbeat telemetry forever
"""

import sys
import signal
import logging
import argparse
import threading
from enum import Enum
from typing import Callable, List, Optional

from pydantic import ValidationError

from .client import WireServerClient
from .collectors.host_info import SystemInfo, SystemStats, collect_system_info, collect_system_stats
from .config import AgentConfig
from .errors import ProtocolError
from .firewall.iptables import WireServerFirewall, resolve_owner_uid
from .goal_state import GoalState
from .heartbeat import HeartbeatScheduler
from .reports import EventKind, build_health_report, build_startup_event, build_status_report
from .settings import AgentSettings

logger = logging.getLogger('guest-agent')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class BootstrapState(Enum):
    """Bootstrap progress; transitions only move forward"""
    START = "start"
    GOAL_STATE_FETCHED = "goal_state_fetched"
    HEALTH_ACKNOWLEDGED = "health_acknowledged"
    STARTUP_TELEMETRY_SENT = "startup_telemetry_sent"
    STATUS_PUBLISHED = "status_published"
    HEARTBEAT_LOOP = "heartbeat_loop"


class GuestAgent:
    """
    Guest Agent - Main daemon class

    Responsibilities:
    1. Fetch the goal state (once; it is never re-polled)
    2. Acknowledge health
    3. Announce startup telemetry (WAStart, settle delay, Provision)
    4. Publish the aggregate status blob
    5. Hand the goal state to the heartbeat scheduler

    Any ProtocolError raised along the way is fatal and propagates.
    """

    def __init__(
        self,
        settings: AgentSettings,
        client: Optional[WireServerClient] = None,
        stop_event: Optional[threading.Event] = None,
        system_info: Callable[[], SystemInfo] = collect_system_info,
        system_stats: Callable[[], SystemStats] = collect_system_stats,
    ):
        self.settings = settings
        self.client = client or WireServerClient(
            settings,
            remediation=WireServerFirewall(
                destination=settings.FIREWALL_DESTINATION,
                use_sudo=settings.FIREWALL_USE_SUDO,
            ),
        )
        self.stop_event = stop_event or threading.Event()
        self.system_info = system_info
        self.system_stats = system_stats

        # State tracking
        self.state = BootstrapState.START
        self.goal_state: Optional[GoalState] = None
        self.scheduler: Optional[HeartbeatScheduler] = None

    def install_signal_handlers(self):
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def stop(self):
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def _require(self, expected: BootstrapState):
        if self.state is not expected:
            raise RuntimeError(
                f"Bootstrap step out of order: in {self.state.value}, expected {expected.value}"
            )

    def _advance(self, new_state: BootstrapState):
        logger.debug(f"Bootstrap: {self.state.value} -> {new_state.value}")
        self.state = new_state

    # -----------------------------
    # Bootstrap steps
    # -----------------------------
    def fetch_goal_state(self) -> GoalState:
        self._require(BootstrapState.START)
        logger.info("Fetching goal state")
        goal_state = self.client.fetch_goal_state()
        self.goal_state = goal_state
        self._advance(BootstrapState.GOAL_STATE_FETCHED)
        logger.info(
            f"Goal state incarnation {goal_state.incarnation} "
            f"(container {goal_state.container_id}, instance {goal_state.instance_id})"
        )
        return goal_state

    def acknowledge_health(self):
        self._require(BootstrapState.GOAL_STATE_FETCHED)
        self.client.send_health_report(build_health_report(self.goal_state))
        self._advance(BootstrapState.HEALTH_ACKNOWLEDGED)

    def send_startup_events(self) -> bool:
        """
        Send WAStart, wait the settle delay, send Provision

        Returns:
            False if stopped during the settle delay
        """
        self._require(BootstrapState.HEALTH_ACKNOWLEDGED)
        logger.info("Sending initial agent startup events...")
        self.client.send_telemetry_event(self._startup_event(EventKind.WA_START), 0)

        if self.stop_event.wait(self.settings.SETTLE_DELAY):
            return False

        self.client.send_telemetry_event(self._startup_event(EventKind.PROVISION), 0)
        self._advance(BootstrapState.STARTUP_TELEMETRY_SENT)
        return True

    def _startup_event(self, kind: EventKind):
        return build_startup_event(
            kind,
            self.goal_state,
            version=self.settings.version_string,
            provider_id=self.settings.AGENT_NAME,
        )

    def publish_status(self):
        self._require(BootstrapState.STARTUP_TELEMETRY_SENT)
        report = build_status_report(
            self.goal_state,
            self.system_info(),
            self.settings.version_string,
        )
        self.client.publish_status(report)
        self._advance(BootstrapState.STATUS_PUBLISHED)

    def bootstrap(self) -> bool:
        """
        Run the fixed bootstrap sequence

        Returns:
            True when the status is published, False if stopped first
        """
        self.fetch_goal_state()
        self.acknowledge_health()
        if not self.send_startup_events():
            return False
        self.publish_status()
        return True

    def run(self):
        """Main daemon loop"""
        logger.info(f"Starting {self.settings.version_string}")

        try:
            if self.bootstrap() and not self.stopped:
                self.scheduler = HeartbeatScheduler(
                    self.client,
                    self.goal_state,
                    self.settings,
                    stop_event=self.stop_event,
                    system_stats=self.system_stats,
                )
                self._require(BootstrapState.STATUS_PUBLISHED)
                self._advance(BootstrapState.HEARTBEAT_LOOP)
                self.scheduler.run()
        finally:
            logger.info("Agent shutting down")
            self.client.close()


def setup_logging(level: int, log_file: Optional[str], console: bool = True):
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            print(f"Cannot open log file {log_file}: {e}", file=sys.stderr)
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def configure_firewall(settings: AgentSettings) -> bool:
    firewall = WireServerFirewall(
        destination=settings.FIREWALL_DESTINATION,
        use_sudo=settings.FIREWALL_USE_SUDO,
    )
    try:
        owner_uid = resolve_owner_uid(settings.FIREWALL_OWNER)
    except KeyError:
        logger.error(f"Unknown firewall owner: {settings.FIREWALL_OWNER}")
        return False
    return firewall.ensure_outbound_allowed(owner_uid)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Guest Agent")
    parser.add_argument("--conf", default=None, help="waagent.conf path")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO, DEBUG when Logs.Verbose=y)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Bootstrap and run the heartbeat loop")
    subparsers.add_parser("show-configuration", help="Print the merged configuration")
    subparsers.add_parser("configure-firewall", help="Add the wire server allow rule and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = AgentSettings()
    except ValidationError as e:
        print(f"Invalid GUEST_AGENT_* environment settings: {e}", file=sys.stderr)
        return 1

    conf_path = args.conf or settings.CONF_FILE
    try:
        config = AgentConfig.load(conf_path)
    except OSError as e:
        print(f"Cannot read configuration {conf_path}: {e}", file=sys.stderr)
        return 1

    if args.command == "show-configuration":
        print(config.show(), end="")
        return 0

    if args.log_level:
        level = getattr(logging, args.log_level)
    else:
        level = logging.DEBUG if config.get_bool("Logs.Verbose") else logging.INFO
    setup_logging(level, settings.LOG_FILE, console=config.get_bool("Logs.Console"))

    if args.command == "configure-firewall":
        logger.info("Configuring firewall rules")
        return 0 if configure_firewall(settings) else 1

    agent = GuestAgent(settings)
    agent.install_signal_handlers()

    try:
        agent.run()
    except ProtocolError as e:
        logger.error(f"Fatal error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
