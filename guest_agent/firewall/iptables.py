# guest_agent/firewall/iptables.py
"""
IPTables remediation for the Guest Agent
Ensures the agent's own process may reach the wire server

The rule lives in the security table so it is evaluated ahead of the
filter table DROP rules some images ship for 168.63.129.16:

    iptables -t security -I OUTPUT 2 -d 168.63.129.16/32 -p tcp \
        -m owner --uid-owner <uid> -j ACCEPT
"""

import os
import pwd
import subprocess
import logging
from typing import List, Optional

logger = logging.getLogger('guest-agent.firewall')


def resolve_owner_uid(username: Optional[str] = None) -> int:
    """
    Resolve the uid the allow rule is keyed on

    Args:
        username: account the agent runs as; None means the effective uid

    Raises:
        KeyError: unknown user name
    """
    if username:
        return pwd.getpwnam(username).pw_uid
    return os.geteuid()


class WireServerFirewall:
    """
    Manages the outbound allow rule for the wire server

    Check-before-insert keeps ensure_outbound_allowed idempotent, so the
    client may call it on every connectivity failure.
    """

    TABLE = "security"
    CHAIN = "OUTPUT"
    INSERT_POSITION = 2

    def __init__(self, destination: str = "168.63.129.16/32", use_sudo: bool = False):
        self.destination = destination
        self.use_sudo = use_sudo

    def _run(self, cmd: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run iptables command"""
        if self.use_sudo:
            cmd = ["sudo"] + cmd
        logger.debug(f"iptables: {' '.join(cmd)}")
        return subprocess.run(cmd, check=check, capture_output=True, text=True)

    def _rule_args(self, operation: str, owner_uid: int, position: Optional[int] = None) -> List[str]:
        chain = [self.CHAIN] if position is None else [self.CHAIN, str(position)]
        return [
            "iptables", "-t", self.TABLE,
            operation, *chain,
            "-d", self.destination,
            "-p", "tcp",
            "-m", "owner", "--uid-owner", str(owner_uid),
            "-j", "ACCEPT",
        ]

    def chain_rule_count(self) -> int:
        """Number of rules currently in the chain (0 if it cannot be read)"""
        try:
            result = self._run(["iptables", "-t", self.TABLE, "-S", self.CHAIN], check=False)
        except OSError as e:
            logger.error(f"Failed to list iptables rules: {e}")
            return 0
        if result.returncode != 0:
            return 0
        return sum(1 for line in result.stdout.splitlines() if line.startswith(f"-A {self.CHAIN} "))

    def rule_exists(self, owner_uid: int) -> bool:
        """Check if the allow rule is already present"""
        try:
            result = self._run(self._rule_args("-C", owner_uid), check=False)
        except OSError as e:
            logger.error(f"Failed to check iptables rule: {e}")
            return False
        return result.returncode == 0

    def add_rule(self, owner_uid: int) -> bool:
        """
        Insert the allow rule at INSERT_POSITION

        An empty chain only accepts position 1, so the position is capped at
        one past the current rule count.
        """
        position = min(self.INSERT_POSITION, self.chain_rule_count() + 1)
        try:
            self._run(self._rule_args("-I", owner_uid, position))
            logger.info(f"Added wire server allow rule for uid {owner_uid} at position {position}")
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to add iptables rule: {e.stderr}")
            return False
        except OSError as e:
            logger.error(f"Error executing iptables command: {e}")
            return False

    def remove_rule(self, owner_uid: int) -> bool:
        """Delete the allow rule"""
        try:
            self._run(self._rule_args("-D", owner_uid))
            logger.info(f"Removed wire server allow rule for uid {owner_uid}")
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to remove iptables rule: {e.stderr}")
            return False
        except OSError as e:
            logger.error(f"Error executing iptables command: {e}")
            return False

    def list_rules(self) -> str:
        """List all rules in the security table OUTPUT chain"""
        try:
            result = self._run(["iptables", "-t", self.TABLE, "-L", self.CHAIN, "-n", "--line-numbers"])
            return result.stdout
        except (subprocess.CalledProcessError, OSError) as e:
            return f"Error: {e}"

    def ensure_outbound_allowed(self, owner_uid: int) -> bool:
        """
        Make sure traffic from owner_uid to the wire server is accepted

        Returns:
            True if the rule exists or was added, False otherwise
        """
        if self.rule_exists(owner_uid):
            logger.info("Wire server allow rule already exists, skipping")
            return True

        added = self.add_rule(owner_uid)
        if added:
            logger.debug(f"Current {self.TABLE} {self.CHAIN} rules:\n{self.list_rules()}")
        return added
