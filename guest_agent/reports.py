# guest_agent/reports.py
"""
Report builders for the wire server protocol

Pure functions: every report is derived from the goal state snapshot plus
host telemetry and a timestamp. Nothing here performs I/O.

Payloads:
- Health report        XML  -> /machine?comp=health
- Telemetry event      XML  -> /machine?comp=telemetrydata
- Status report        JSON -> :32526/status (base64 status blob envelope)
"""

import base64
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .collectors.host_info import SystemInfo, SystemStats
from .goal_state import GoalState

READY = "Ready"
TELEMETRY_SCHEMA_VERSION = "1.0"
STATUS_SCHEMA_VERSION = "1.1"
AGENT_RUNNING_MESSAGE = "Guest Agent is running"

SUPPORTED_FEATURES = (
    ("MultipleExtensionsPerHandler", "1.0"),
    ("VersioningGovernance", "1.0"),
    ("FastTrack", "1.0"),
)

STATUS_BLOB_URI = "https://md-hdd-placeholder.z27.blob.storage.azure.net/$system/gpg.{container_id}.status"


class EventKind(str, Enum):
    """Telemetry event kinds understood by the wire server"""
    HEARTBEAT = "HeartBeat"
    AGENT_STATUS = "AgentStatus"
    WA_START = "WAStart"
    PROVISION = "Provision"

    @property
    def event_id(self) -> int:
        return EVENT_IDS[self]


EVENT_IDS = {
    EventKind.HEARTBEAT: 1,
    EventKind.AGENT_STATUS: 2,
    EventKind.WA_START: 3,
    EventKind.PROVISION: 4,
}

# Indexed by heartbeat counter % 4
HEARTBEAT_CYCLE = (
    EventKind.AGENT_STATUS,
    EventKind.HEARTBEAT,
    EventKind.WA_START,
    EventKind.PROVISION,
)


def event_kind_for_tick(counter: int) -> EventKind:
    """Event kind sent on heartbeat tick `counter` (first tick is 1)"""
    return HEARTBEAT_CYCLE[counter % len(HEARTBEAT_CYCLE)]


# -----------------------------
# Timestamps
# -----------------------------
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(now: datetime) -> str:
    """Millisecond UTC timestamp, e.g. 2026-01-01T00:00:00.000Z"""
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def format_rfc3339(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat()


# -----------------------------
# Health report
# -----------------------------
@dataclass(frozen=True)
class HealthReport:
    incarnation: int
    container_id: str
    instance_id: str
    state: str = READY

    def to_xml(self) -> str:
        root = ET.Element("Health")
        ET.SubElement(root, "GoalStateIncarnation").text = str(self.incarnation)
        container = ET.SubElement(root, "Container")
        ET.SubElement(container, "ContainerId").text = self.container_id
        role = ET.SubElement(ET.SubElement(container, "RoleInstanceList"), "Role")
        ET.SubElement(role, "InstanceId").text = self.instance_id
        ET.SubElement(ET.SubElement(role, "Health"), "State").text = self.state
        return ET.tostring(root, encoding="unicode")


def build_health_report(goal_state: GoalState) -> HealthReport:
    return HealthReport(
        incarnation=goal_state.incarnation,
        container_id=goal_state.container_id,
        instance_id=goal_state.instance_id,
    )


# -----------------------------
# Telemetry events
# -----------------------------
@dataclass(frozen=True)
class Param:
    name: str
    value: str


@dataclass(frozen=True)
class TelemetryEvent:
    """
    A named event with ordered parameters

    Receivers may parse parameters positionally; the order of `params` is
    the order on the wire.
    """
    kind: EventKind
    params: Tuple[Param, ...]
    provider_id: str
    version: str = TELEMETRY_SCHEMA_VERSION

    @property
    def event_id(self) -> int:
        return self.kind.event_id

    def param_names(self) -> List[str]:
        return [p.name for p in self.params]

    def get_param(self, name: str) -> Optional[str]:
        for param in self.params:
            if param.name == name:
                return param.value
        return None

    def to_xml(self) -> str:
        root = ET.Element("TelemetryData", {"version": self.version})
        provider = ET.SubElement(root, "Provider", {"id": self.provider_id})
        event = ET.SubElement(provider, "Event", {"id": str(self.event_id)})
        event_data = ET.SubElement(event, "EventData", {"name": self.kind.value})
        for param in self.params:
            ET.SubElement(event_data, "Param", {"name": param.name, "value": param.value})
        return ET.tostring(root, encoding="unicode")


def _base_params(goal_state: GoalState, version: str, timestamp: str) -> List[Param]:
    return [
        Param("Version", version),
        Param("Timestamp", timestamp),
        Param("Container", goal_state.container_id),
        Param("RoleInstance", goal_state.instance_id),
    ]


def build_startup_event(
    kind: EventKind,
    goal_state: GoalState,
    *,
    version: str,
    provider_id: str,
    now: Optional[datetime] = None,
) -> TelemetryEvent:
    """
    Build the WAStart / Provision pair announced once during bootstrap

    These use their own parameter order, distinct from the heartbeat cycle.
    """
    timestamp = format_timestamp(now or utc_now())

    if kind is EventKind.WA_START:
        params = [
            Param("Version", version),
            Param("GAState", READY),
            Param("Container", goal_state.container_id),
            Param("RoleInstance", goal_state.instance_id),
            Param("Timestamp", timestamp),
        ]
    elif kind is EventKind.PROVISION:
        params = [
            Param("Version", version),
            Param("IsVMProvisionedForLogs", "true"),
            Param("ProvisioningState", READY),
            Param("Container", goal_state.container_id),
            Param("RoleInstance", goal_state.instance_id),
            Param("Timestamp", timestamp),
        ]
    else:
        raise ValueError(f"{kind.value} is not a startup event")

    return TelemetryEvent(kind=kind, params=tuple(params), provider_id=provider_id)


def build_telemetry_event(
    kind: EventKind,
    goal_state: GoalState,
    stats: Optional[SystemStats] = None,
    *,
    version: str,
    provider_id: str,
    now: Optional[datetime] = None,
) -> TelemetryEvent:
    """
    Build a heartbeat-cycle event

    Every kind starts with Version, Timestamp, Container, RoleInstance.
    HeartBeat additionally needs live `stats`.
    """
    params = _base_params(goal_state, version, format_timestamp(now or utc_now()))

    if kind is EventKind.HEARTBEAT:
        if stats is None:
            raise ValueError("HeartBeat events require system stats")
        params.extend([
            Param("IsVersionFromRSM", "true"),
            Param("GAState", READY),
            Param("Role", goal_state.instance_id),
            Param("CPU", stats.cpu_usage_str()),
            Param("Memory", stats.memory_usage_str()),
            Param("ProcessorTime", stats.uptime_seconds_str()),
        ])
    elif kind is EventKind.WA_START:
        params.append(Param("GAState", READY))
    elif kind is EventKind.PROVISION:
        params.extend([
            Param("IsVMProvisionedForLogs", "true"),
            Param("ProvisioningState", READY),
        ])
    elif kind is EventKind.AGENT_STATUS:
        params.extend([
            Param("Status", READY),
            Param("Message", AGENT_RUNNING_MESSAGE),
            Param("FormattedMessage", f"{AGENT_RUNNING_MESSAGE} (Version: {version})"),
        ])

    return TelemetryEvent(kind=kind, params=tuple(params), provider_id=provider_id)


# -----------------------------
# Status report
# -----------------------------
def _formatted_message(message: str) -> Dict[str, str]:
    return {"lang": "en-US", "message": message}


@dataclass(frozen=True)
class StatusReport:
    """Aggregate agent + VM status snapshot published on the status channel"""
    timestamp: datetime
    agent_version: str
    incarnation: int
    container_id: str
    instance_id: str
    system_info: SystemInfo
    status: str = READY

    @property
    def host_config_name(self) -> str:
        return f"{self.instance_id}.0.{self.instance_id}.0._gpg.1.xml"

    def to_dict(self) -> Dict[str, Any]:
        """The status document itself (what the portal reads)"""
        timestamp = format_rfc3339(self.timestamp)
        return {
            "version": STATUS_SCHEMA_VERSION,
            "timestampUTC": timestamp,
            "aggregateStatus": {
                "guestAgentStatus": {
                    "version": self.agent_version,
                    "status": self.status,
                    "formattedMessage": _formatted_message(AGENT_RUNNING_MESSAGE),
                    "updateStatus": {
                        "expectedVersion": self.agent_version,
                        "status": "Success",
                        "code": 0,
                        "formattedMessage": _formatted_message(""),
                    },
                },
                "handlerAggregateStatus": [],
                "vmArtifactsAggregateStatus": {
                    "goalStateAggregateStatus": {
                        "formattedMessage": _formatted_message("GoalState executed successfully"),
                        "timestampUTC": timestamp,
                        "inSvdSeqNo": str(self.incarnation),
                        "status": "Success",
                        "code": 0,
                    },
                },
            },
            "guestOSInfo": {
                "computerName": self.system_info.hostname,
                "osName": self.system_info.os_name,
                "osVersion": self.system_info.os_version,
                "version": self.agent_version,
            },
            "supportedFeatures": [
                {"Key": key, "Value": value} for key, value in SUPPORTED_FEATURES
            ],
        }

    def encoded_content(self) -> str:
        content = json.dumps(self.to_dict(), separators=(",", ":"))
        return base64.b64encode(content.encode("utf-8")).decode("ascii")

    def to_payload(self, blob_api_version: str) -> Dict[str, Any]:
        """Envelope PUT to the status channel"""
        return {
            "content": self.encoded_content(),
            "headers": [
                {"headerName": "Content-Length", "headerValue": "1024"},
                {"headerName": "x-ms-date", "headerValue": format_timestamp(self.timestamp)},
                {"headerName": "x-ms-range", "headerValue": "bytes=0-1023"},
                {"headerName": "x-ms-page-write", "headerValue": "update"},
                {"headerName": "x-ms-version", "headerValue": blob_api_version},
            ],
            "requestUri": STATUS_BLOB_URI.format(container_id=self.container_id),
        }


def build_status_report(
    goal_state: GoalState,
    system_info: SystemInfo,
    agent_version: str,
    *,
    now: Optional[datetime] = None,
) -> StatusReport:
    return StatusReport(
        timestamp=now or utc_now(),
        agent_version=agent_version,
        incarnation=goal_state.incarnation,
        container_id=goal_state.container_id,
        instance_id=goal_state.instance_id,
        system_info=system_info,
    )
