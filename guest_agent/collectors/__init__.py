# guest_agent/collectors/__init__.py
"""
Data Collectors for the Guest Agent
Read-only host information used in report payloads
"""

from .host_info import SystemInfo, SystemStats, collect_system_info, collect_system_stats

__all__ = [
    'SystemInfo',
    'SystemStats',
    'collect_system_info',
    'collect_system_stats',
]
