# tests/agent/test_firewall.py
"""
Unit Tests for the wire server iptables remediation

Run with:
    pytest tests/agent/test_firewall.py -v
"""

import subprocess
from unittest.mock import Mock, patch

import pytest

from guest_agent.firewall import iptables
from guest_agent.firewall.iptables import WireServerFirewall, resolve_owner_uid


RULE_TAIL = [
    "-d", "168.63.129.16/32",
    "-p", "tcp",
    "-m", "owner", "--uid-owner", "1000",
    "-j", "ACCEPT",
]

CHAIN_WITH_RULES = """\
-P OUTPUT ACCEPT
-A OUTPUT -d 168.63.129.16/32 -p tcp -m owner --uid-owner 0 -j ACCEPT
-A OUTPUT -d 168.63.129.16/32 -p tcp -m conntrack --ctstate INVALID,NEW -j DROP
"""


def _completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


@pytest.fixture
def mock_run():
    with patch.object(iptables.subprocess, "run") as run:
        yield run


class TestRuleCommands:
    """Tests for the iptables command lines"""

    def test_rule_exists_uses_check(self, mock_run):
        mock_run.return_value = _completed(0)

        assert WireServerFirewall().rule_exists(1000) is True

        cmd = mock_run.call_args[0][0]
        assert cmd == ["iptables", "-t", "security", "-C", "OUTPUT"] + RULE_TAIL
        assert mock_run.call_args[1]["check"] is False

    def test_rule_missing(self, mock_run):
        mock_run.return_value = _completed(1)

        assert WireServerFirewall().rule_exists(1000) is False

    def test_add_rule_inserts_at_position_two(self, mock_run):
        mock_run.side_effect = [_completed(0, stdout=CHAIN_WITH_RULES), _completed(0)]

        assert WireServerFirewall().add_rule(1000) is True

        listing, insert = [c[0][0] for c in mock_run.call_args_list]
        assert listing == ["iptables", "-t", "security", "-S", "OUTPUT"]
        assert insert == ["iptables", "-t", "security", "-I", "OUTPUT", "2"] + RULE_TAIL

    def test_add_rule_empty_chain_uses_position_one(self, mock_run):
        mock_run.side_effect = [_completed(0, stdout="-P OUTPUT ACCEPT\n"), _completed(0)]

        assert WireServerFirewall().add_rule(1000) is True

        assert mock_run.call_args[0][0] == ["iptables", "-t", "security", "-I", "OUTPUT", "1"] + RULE_TAIL

    def test_chain_rule_count(self, mock_run):
        mock_run.return_value = _completed(0, stdout=CHAIN_WITH_RULES)

        assert WireServerFirewall().chain_rule_count() == 2

    def test_chain_rule_count_unreadable(self, mock_run):
        mock_run.return_value = _completed(1)

        assert WireServerFirewall().chain_rule_count() == 0

    def test_remove_rule_deletes(self, mock_run):
        mock_run.return_value = _completed(0)

        assert WireServerFirewall().remove_rule(1000) is True

        assert mock_run.call_args[0][0] == ["iptables", "-t", "security", "-D", "OUTPUT"] + RULE_TAIL

    def test_sudo_prefix(self, mock_run):
        mock_run.return_value = _completed(0)

        WireServerFirewall(use_sudo=True).add_rule(1000)

        assert all(c[0][0][:2] == ["sudo", "iptables"] for c in mock_run.call_args_list)

    def test_add_rule_failure(self, mock_run):
        mock_run.side_effect = [
            _completed(0),
            subprocess.CalledProcessError(4, "iptables", stderr="Permission denied"),
        ]

        assert WireServerFirewall().add_rule(1000) is False

    def test_iptables_not_installed(self, mock_run):
        mock_run.side_effect = FileNotFoundError("iptables")

        firewall = WireServerFirewall()

        assert firewall.rule_exists(1000) is False
        assert firewall.add_rule(1000) is False
        assert firewall.list_rules().startswith("Error:")


class TestEnsureOutboundAllowed:
    """Tests for the idempotent check-then-insert"""

    def test_existing_rule_not_inserted_again(self, mock_run):
        mock_run.return_value = _completed(0)

        assert WireServerFirewall().ensure_outbound_allowed(1000) is True

        assert mock_run.call_count == 1
        assert mock_run.call_args[0][0][3] == "-C"

    def test_missing_rule_inserted(self, mock_run):
        mock_run.side_effect = [
            _completed(1),
            _completed(0, stdout=CHAIN_WITH_RULES),
            _completed(0),
            _completed(0, stdout="rules"),
        ]

        assert WireServerFirewall().ensure_outbound_allowed(1000) is True

        operations = [c[0][0][3] for c in mock_run.call_args_list]
        assert operations == ["-C", "-S", "-I", "-L"]

    def test_insert_failure(self, mock_run):
        mock_run.side_effect = [
            _completed(1),
            _completed(0),
            subprocess.CalledProcessError(1, "iptables", stderr="denied"),
        ]

        assert WireServerFirewall().ensure_outbound_allowed(1000) is False


class TestResolveOwnerUid:
    """Tests for resolve_owner_uid"""

    def test_defaults_to_effective_uid(self):
        with patch.object(iptables.os, "geteuid", return_value=4242):
            assert resolve_owner_uid() == 4242

    def test_named_user(self):
        with patch.object(iptables.pwd, "getpwnam", return_value=Mock(pw_uid=1001)) as getpwnam:
            assert resolve_owner_uid("agent") == 1001

        getpwnam.assert_called_once_with("agent")

    def test_unknown_user(self):
        with patch.object(iptables.pwd, "getpwnam", side_effect=KeyError("nobody-here")):
            with pytest.raises(KeyError):
                resolve_owner_uid("nobody-here")
