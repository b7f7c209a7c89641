# guest_agent/settings.py
"""
Runtime settings for the guest agent.

Immutable; built once in main() and handed to the client, the sequencer and
the heartbeat scheduler. Every field can be overridden from the environment
with the GUEST_AGENT_ prefix (e.g. GUEST_AGENT_HEARTBEAT_INTERVAL=5).
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


class AgentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GUEST_AGENT_", frozen=True)

    # Agent identity
    AGENT_NAME: str = "guest-agent"
    AGENT_VERSION: str = __version__

    # Wire server (machine endpoint) and the status channel on the same host
    WIRESERVER_ENDPOINT: str = "http://168.63.129.16"
    STATUS_PORT: int = 32526
    WIRESERVER_API_VERSION: str = "2012-11-30"
    STATUS_API_VERSION: str = "2015-09-01"
    STATUS_BLOB_API_VERSION: str = "2014-02-14"

    # Timers (seconds)
    REQUEST_TIMEOUT: float = 10.0
    SETTLE_DELAY: float = 2.0
    HEARTBEAT_INTERVAL: float = 30.0

    # Remediation: allow rule for the wire server keyed by process owner
    FIREWALL_DESTINATION: str = "168.63.129.16/32"
    FIREWALL_OWNER: Optional[str] = None  # user name; None = effective uid
    FIREWALL_USE_SUDO: bool = False
    # Status publish has no remediation retry unless switched on
    REMEDIATE_STATUS_PUBLISH: bool = False

    # Files
    CONF_FILE: str = "/etc/waagent.conf"
    LOG_FILE: Optional[str] = "/var/log/guest-agent.log"

    @property
    def version_string(self) -> str:
        """Version as reported on the wire, e.g. guest-agent/0.1.0"""
        return f"{self.AGENT_NAME}/{self.AGENT_VERSION}"

    @property
    def user_agent(self) -> str:
        return self.version_string

    @property
    def machine_url(self) -> str:
        return f"{self.WIRESERVER_ENDPOINT.rstrip('/')}/machine"

    @property
    def status_url(self) -> str:
        return f"{self.WIRESERVER_ENDPOINT.rstrip('/')}:{self.STATUS_PORT}/status"
