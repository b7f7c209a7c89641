# guest_agent/firewall/__init__.py
"""
Firewall Module

Remediation for wire server connectivity:
- Outbound allow rule keyed by process owner (iptables security table)
"""

from .iptables import WireServerFirewall, resolve_owner_uid

__all__ = ["WireServerFirewall", "resolve_owner_uid"]
