# guest_agent/collectors/host_info.py
"""
Host Information Collector
Collects OS identity for the status report and live resource usage for
HeartBeat events
"""

import os
import socket
import logging
from dataclasses import dataclass
from pathlib import Path

import distro

logger = logging.getLogger('guest-agent.collector')

PROC_MEMINFO = Path('/proc/meminfo')
PROC_UPTIME = Path('/proc/uptime')


@dataclass(frozen=True)
class SystemInfo:
    hostname: str
    os_name: str
    os_version: str


@dataclass(frozen=True)
class SystemStats:
    cpu_usage: float
    memory_usage: float
    uptime_seconds: int

    def cpu_usage_str(self) -> str:
        return f"{self.cpu_usage:.1f}%"

    def memory_usage_str(self) -> str:
        return f"{self.memory_usage:.1f}%"

    def uptime_seconds_str(self) -> str:
        return str(self.uptime_seconds)


def collect_system_info() -> SystemInfo:
    """
    Collect host identity

    Returns:
        SystemInfo with hostname, lowercase OS id (e.g. "ubuntu") and version
    """
    try:
        hostname = socket.gethostname()
    except OSError as e:
        logger.debug(f"Failed to read hostname: {e}")
        hostname = "Undefined"

    return SystemInfo(
        hostname=hostname or "Undefined",
        os_name=(distro.id() or "unknown").lower(),
        os_version=distro.version() or "unknown",
    )


def collect_system_stats() -> SystemStats:
    """
    Collect current resource usage (for HeartBeat)

    CPU is the 1-minute load average scaled to percent; values that cannot
    be read on this platform are reported as 0.
    """
    return SystemStats(
        cpu_usage=get_cpu_usage_percent(),
        memory_usage=get_memory_usage_percent(),
        uptime_seconds=get_uptime_seconds(),
    )


def get_cpu_usage_percent() -> float:
    try:
        load_1m, _, _ = os.getloadavg()
    except (OSError, AttributeError):
        return 0.0
    return load_1m * 100.0


def get_memory_usage_percent(meminfo_path: Path = PROC_MEMINFO) -> float:
    try:
        contents = meminfo_path.read_text(encoding='utf-8')
    except OSError:
        return 0.0

    mem_total = 0
    mem_available = 0
    try:
        for line in contents.splitlines():
            if line.startswith('MemTotal:'):
                mem_total = int(line.split()[1])
            elif line.startswith('MemAvailable:'):
                mem_available = int(line.split()[1])
    except (IndexError, ValueError) as e:
        logger.debug(f"Unparsable {meminfo_path}: {e}")
        return 0.0

    if mem_total <= 0:
        return 0.0
    return round((1 - mem_available / mem_total) * 100, 1)


def get_uptime_seconds(uptime_path: Path = PROC_UPTIME) -> int:
    try:
        return int(float(uptime_path.read_text(encoding='utf-8').split()[0]))
    except (OSError, ValueError, IndexError):
        return 0
