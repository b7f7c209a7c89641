# guest_agent/goal_state.py
"""
Goal State snapshot

Parsed once from the wire server's goalstate document and held read-only
for the lifetime of the process.

Only the fields the agent reports back are kept:

    <GoalState>
      <Version>2015-04-05</Version>
      <Incarnation>1</Incarnation>
      <Machine>...</Machine>
      <Container>
        <ContainerId>...</ContainerId>
        <RoleInstanceList>
          <RoleInstance>
            <InstanceId>...</InstanceId>
            <State>Started</State>
            <Configuration>...</Configuration>
          </RoleInstance>
        </RoleInstanceList>
      </Container>
    </GoalState>
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from .config.parser import U32_MAX
from .errors import GoalStateError

# Unsigned decimal incarnation, ASCII digits only
_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class GoalState:
    """Platform-issued desired-state snapshot"""
    incarnation: int
    container_id: str
    instance_id: str
    version: str = ""

    def __post_init__(self):
        if self.incarnation < 0:
            raise GoalStateError(f"Incarnation must be >= 0, got {self.incarnation}")

    @classmethod
    def from_xml(cls, xml: str) -> "GoalState":
        """
        Parse the goalstate document

        Raises:
            GoalStateError: malformed XML or a required field is missing
        """
        try:
            root = ET.fromstring(xml)
        except ET.ParseError as e:
            raise GoalStateError(f"Malformed goal state XML: {e}") from e

        incarnation_text = _required_text(root, "Incarnation")
        if not _DIGITS.fullmatch(incarnation_text) or int(incarnation_text) > U32_MAX:
            raise GoalStateError(f"Invalid Incarnation: {incarnation_text!r}")
        incarnation = int(incarnation_text)

        return cls(
            incarnation=incarnation,
            container_id=_required_text(root, "Container/ContainerId"),
            instance_id=_required_text(
                root, "Container/RoleInstanceList/RoleInstance/InstanceId"
            ),
            version=(root.findtext("Version") or "").strip(),
        )


def _required_text(root: ET.Element, path: str) -> str:
    value = root.findtext(path)
    if value is None or not value.strip():
        raise GoalStateError(f"Goal state is missing {path}")
    return value.strip()
