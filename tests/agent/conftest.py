# tests/agent/conftest.py
"""
Pytest fixtures for Agent tests
Shared configuration and mock objects
"""

import pytest
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import requests

# Add project root for imports
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from guest_agent.collectors.host_info import SystemInfo, SystemStats
from guest_agent.goal_state import GoalState
from guest_agent.settings import AgentSettings


GOAL_STATE_XML = """<?xml version="1.0" encoding="utf-8"?>
<GoalState xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xsi:noNamespaceSchemaLocation="goalstate10.xsd">
  <Version>2015-04-05</Version>
  <Incarnation>1</Incarnation>
  <Machine>
    <ExpectedState>Started</ExpectedState>
    <StopRolesDeadlineHint>300000</StopRolesDeadlineHint>
    <LBProbePorts>
      <Port>16001</Port>
    </LBProbePorts>
    <ExpectHealthReport>FALSE</ExpectHealthReport>
  </Machine>
  <Container>
    <ContainerId>abc</ContainerId>
    <RoleInstanceList>
      <RoleInstance>
        <InstanceId>xyz</InstanceId>
        <State>Started</State>
        <Configuration>
          <HostingEnvironmentConfig>http://168.63.129.16:80/machine/abc/xyz?comp=config&amp;type=hostingEnvironmentConfig&amp;incarnation=1</HostingEnvironmentConfig>
          <SharedConfig>http://168.63.129.16:80/machine/abc/xyz?comp=config&amp;type=sharedConfig&amp;incarnation=1</SharedConfig>
          <ExtensionsConfig>http://168.63.129.16:80/machine/abc/xyz?comp=config&amp;type=extensionsConfig&amp;incarnation=1</ExtensionsConfig>
          <FullConfig>http://168.63.129.16:80/machine/abc/xyz?comp=config&amp;type=fullConfig&amp;incarnation=1</FullConfig>
          <Certificates>http://168.63.129.16:80/machine/abc/xyz?comp=certificates&amp;incarnation=1</Certificates>
          <ConfigName>xyz.0.xyz.0._test.1.xml</ConfigName>
        </Configuration>
      </RoleInstance>
    </RoleInstanceList>
  </Container>
</GoalState>
"""


@pytest.fixture
def settings():
    """Settings with zero timers so loops run instantly"""
    return AgentSettings(
        HEARTBEAT_INTERVAL=0,
        SETTLE_DELAY=0,
        LOG_FILE=None,
        AGENT_NAME="guest-agent",
        AGENT_VERSION="0.1.0",
    )


@pytest.fixture
def goal_state_xml():
    return GOAL_STATE_XML


@pytest.fixture
def goal_state():
    return GoalState(incarnation=1, container_id="abc", instance_id="xyz", version="2015-04-05")


@pytest.fixture
def system_info():
    return SystemInfo(hostname="test-vm-01", os_name="ubuntu", os_version="24.04")


@pytest.fixture
def system_stats():
    return SystemStats(cpu_usage=12.345, memory_usage=48.0, uptime_seconds=3600)


@pytest.fixture
def fixed_now():
    return datetime(2026, 1, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


@pytest.fixture
def make_response():
    """Build a fake requests.Response"""
    def _make(status_code=200, text=""):
        response = Mock(spec=requests.Response)
        response.status_code = status_code
        response.text = text
        return response
    return _make


@pytest.fixture
def mock_session():
    """Create a mock requests session"""
    return Mock(spec=requests.Session)


@pytest.fixture
def mock_remediation():
    """Remediation collaborator that always succeeds"""
    remediation = Mock()
    remediation.ensure_outbound_allowed = Mock(return_value=True)
    return remediation


@pytest.fixture
def stop_event():
    return threading.Event()
