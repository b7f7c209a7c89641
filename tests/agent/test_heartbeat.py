# tests/agent/test_heartbeat.py
"""
Unit Tests for HeartbeatScheduler

Run with:
    pytest tests/agent/test_heartbeat.py -v
"""

from unittest.mock import Mock

import pytest

from guest_agent.client import WireResponse
from guest_agent.errors import ConnectivityError
from guest_agent.heartbeat import HeartbeatScheduler
from guest_agent.reports import EventKind


@pytest.fixture
def fake_client():
    client = Mock()
    client.send_telemetry_event.return_value = WireResponse(200, "")
    return client


@pytest.fixture
def scheduler(fake_client, goal_state, settings, stop_event, system_stats):
    return HeartbeatScheduler(
        fake_client, goal_state, settings,
        stop_event=stop_event,
        system_stats=Mock(return_value=system_stats),
    )


def _sent(fake_client):
    return [(c[0][0].kind, c[0][1]) for c in fake_client.send_telemetry_event.call_args_list]


class TestTick:
    """Tests for a single scheduler step"""

    def test_counter_starts_at_one(self, scheduler):
        assert scheduler.counter == 1
        assert scheduler.next_kind is EventKind.HEARTBEAT

    def test_cycle_order(self, scheduler, fake_client):
        for _ in range(5):
            scheduler.tick()

        assert _sent(fake_client) == [
            (EventKind.HEARTBEAT, 1),
            (EventKind.WA_START, 2),
            (EventKind.PROVISION, 3),
            (EventKind.AGENT_STATUS, 4),
            (EventKind.HEARTBEAT, 5),
        ]
        assert scheduler.counter == 6

    def test_stats_sampled_for_heartbeat_only(self, scheduler):
        for _ in range(4):
            scheduler.tick()

        assert scheduler.system_stats.call_count == 1

    def test_heartbeat_carries_stats(self, scheduler, fake_client):
        scheduler.tick()

        event = fake_client.send_telemetry_event.call_args[0][0]
        assert event.get_param("CPU") == "12.3%"
        assert event.get_param("ProcessorTime") == "3600"

    def test_counter_advances_on_non_2xx(self, scheduler, fake_client):
        fake_client.send_telemetry_event.return_value = WireResponse(500, "boom")

        response = scheduler.tick()

        assert not response.ok
        assert scheduler.counter == 2

    def test_fatal_error_propagates(self, scheduler, fake_client):
        fake_client.send_telemetry_event.side_effect = ConnectivityError("unreachable")

        with pytest.raises(ConnectivityError):
            scheduler.tick()

        assert scheduler.counter == 1


class TestRun:
    """Tests for the interval loop"""

    def test_runs_until_stopped(self, scheduler, fake_client, stop_event):
        def send(event, count):
            if count == 6:
                stop_event.set()
            return WireResponse(200, "")

        fake_client.send_telemetry_event.side_effect = send

        scheduler.run()

        assert fake_client.send_telemetry_event.call_count == 6
        assert scheduler.counter == 7

    def test_stopped_before_first_tick(self, scheduler, fake_client):
        scheduler.stop()

        scheduler.run()

        fake_client.send_telemetry_event.assert_not_called()

    def test_fatal_error_ends_loop(self, scheduler, fake_client):
        fake_client.send_telemetry_event.side_effect = [
            WireResponse(200, ""),
            ConnectivityError("unreachable"),
        ]

        with pytest.raises(ConnectivityError):
            scheduler.run()

        assert scheduler.counter == 2
