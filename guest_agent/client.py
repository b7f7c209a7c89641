# guest_agent/client.py
"""
Wire Server Client
HTTP client for the machine endpoint and the status channel

Retry policy (shared by every outbound call):
1. Send with a bounded timeout
2. Connectivity failure (timeout, refused, unreachable): run remediation
   once, then resend the identical request once
3. Any failure on the resend is fatal, as is any non-connectivity failure
   (TLS, proxy, DNS) on the first attempt

A non-2xx answer is not an error: it is logged with its body and returned.
"""

import logging
import socket
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from urllib3.exceptions import NameResolutionError

from .errors import ConnectivityError, GoalStateError, ProtocolError, TransportError
from .firewall.iptables import resolve_owner_uid
from .goal_state import GoalState
from .reports import HealthReport, StatusReport, TelemetryEvent
from .settings import AgentSettings

logger = logging.getLogger('guest-agent.client')

XML_CONTENT_TYPE = "text/xml;charset=utf-8"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class WireResponse:
    """A delivered exchange; `ok` is False for non-2xx answers"""
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def is_name_resolution_failure(error: BaseException) -> bool:
    """
    True if a DNS lookup failure sits anywhere in the exception chain

    requests wraps it as ConnectionError -> MaxRetryError -> NameResolutionError
    (urllib3 2.x) or leaves a socket.gaierror in the context chain.
    """
    pending = [error]
    seen = set()
    while pending:
        exc = pending.pop()
        if not isinstance(exc, BaseException) or id(exc) in seen:
            continue
        seen.add(id(exc))
        if isinstance(exc, (NameResolutionError, socket.gaierror)):
            return True
        pending.extend([exc.__cause__, exc.__context__, getattr(exc, "reason", None)])
        pending.extend(exc.args)
    return False


def classify_request_error(error: requests.exceptions.RequestException) -> ProtocolError:
    """
    Map a requests exception onto the connectivity / transport split

    Only timeouts and refused/unreachable connections are connectivity
    failures. TLS, proxy and DNS failures are transport errors.
    """
    if isinstance(error, (requests.exceptions.SSLError, requests.exceptions.ProxyError)):
        return TransportError(str(error))
    if is_name_resolution_failure(error):
        return TransportError(f"Name resolution failed: {error}")
    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return ConnectivityError(str(error))
    return TransportError(str(error))


class WireServerClient:
    """
    Client for the wire server protocol exchanges

    `remediation` is any object with ensure_outbound_allowed(owner_uid) -> bool,
    normally a WireServerFirewall.
    """

    def __init__(
        self,
        settings: AgentSettings,
        remediation: Optional[Any] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.remediation = remediation
        self.session = session or requests.Session()

    def close(self):
        self.session.close()

    # -----------------------------
    # Transport
    # -----------------------------
    def _request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[str] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> WireResponse:
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=data.encode("utf-8") if data is not None else None,
                json=json_body,
                timeout=self.settings.REQUEST_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            raise classify_request_error(e) from e

        return WireResponse(status_code=response.status_code, body=response.text)

    def send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[str] = None,
        json_body: Optional[Dict[str, Any]] = None,
        remediate: bool = True,
    ) -> WireResponse:
        """
        Send a request under the single remediate-then-retry policy

        Raises:
            ConnectivityError: endpoint unreachable (after the retry, if any)
            TransportError: any other transport failure
        """
        try:
            return self._request(method, url, headers, data, json_body)
        except ConnectivityError as e:
            if not remediate:
                raise
            logger.warning(f"Timeout or connection error reaching wire server: {e}")

        self._remediate()

        logger.info(f"Retrying {method} {url}")
        return self._request(method, url, headers, data, json_body)

    def _remediate(self):
        """Run remediation once; its failure never blocks the retry"""
        if self.remediation is None:
            logger.warning("No remediation configured, retrying as is")
            return

        logger.info("Attempting to add firewall rule for wire server access...")
        try:
            owner_uid = resolve_owner_uid(self.settings.FIREWALL_OWNER)
            allowed = self.remediation.ensure_outbound_allowed(owner_uid)
        except Exception as e:
            logger.error(f"Remediation failed: {e}")
            return

        if not allowed:
            logger.warning("Remediation did not add the firewall rule")

    # -----------------------------
    # Headers
    # -----------------------------
    def _wire_headers(self) -> Dict[str, str]:
        return {
            "x-ms-version": self.settings.WIRESERVER_API_VERSION,
            "x-ms-agent-name": self.settings.AGENT_NAME,
            "User-Agent": self.settings.user_agent,
            "Content-Type": XML_CONTENT_TYPE,
        }

    def _status_headers(self, report: StatusReport) -> Dict[str, str]:
        return {
            "x-ms-version": self.settings.STATUS_API_VERSION,
            "x-ms-agent-name": self.settings.AGENT_NAME,
            "User-Agent": self.settings.user_agent,
            "Content-Type": JSON_CONTENT_TYPE,
            "x-ms-containerid": report.container_id,
            "x-ms-host-config-name": report.host_config_name,
        }

    # -----------------------------
    # Protocol exchanges
    # -----------------------------
    def fetch_goal_state(self) -> GoalState:
        """GET /machine?comp=goalstate and parse it"""
        response = self.send(
            "GET",
            f"{self.settings.machine_url}?comp=goalstate",
            headers={"x-ms-version": self.settings.WIRESERVER_API_VERSION},
        )

        if not response.ok:
            raise GoalStateError(
                f"Goal state request failed with HTTP {response.status_code}: {response.body}"
            )

        goal_state = GoalState.from_xml(response.body)
        logger.debug(f"Received GoalState: {goal_state}")
        return goal_state

    def send_health_report(self, report: HealthReport) -> WireResponse:
        """POST /machine?comp=health"""
        health_xml = report.to_xml()
        logger.debug(f"Generated health report XML: {health_xml}")

        response = self.send(
            "POST",
            f"{self.settings.machine_url}?comp=health",
            headers=self._wire_headers(),
            data=health_xml,
        )

        logger.info(f"Health report status: {response.status_code}")
        if not response.ok:
            logger.warning(f"Health report error: {response.body}")
        return response

    def send_telemetry_event(self, event: TelemetryEvent, count: int = 0) -> WireResponse:
        """POST /machine?comp=telemetrydata"""
        name = event.kind.value
        logger.info(f"Sending {name} #{count}")

        response = self.send(
            "POST",
            f"{self.settings.machine_url}?comp=telemetrydata",
            headers=self._wire_headers(),
            data=event.to_xml(),
        )

        logger.info(f"{name} #{count} status: {response.status_code}")
        if not response.ok:
            logger.warning(f"Telemetry error: {response.body}")
        return response

    def publish_status(self, report: StatusReport) -> WireResponse:
        """
        PUT the status blob envelope to the status channel

        No remediation retry unless REMEDIATE_STATUS_PUBLISH is set.
        """
        logger.info("Sending status report to status service...")

        response = self.send(
            "PUT",
            self.settings.status_url,
            headers=self._status_headers(report),
            json_body=report.to_payload(self.settings.STATUS_BLOB_API_VERSION),
            remediate=self.settings.REMEDIATE_STATUS_PUBLISH,
        )

        logger.info(f"Status service response: {response.status_code}")
        if not response.ok:
            logger.warning(f"Status service error: {response.body}")
        return response
