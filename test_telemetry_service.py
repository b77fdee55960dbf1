"""
Test TelemetryService (Without Broker or Controller)
====================================================

Wires the service with a scripted poller, fake channel clients and a fake
control plane that records status messages.

Usage:
    pytest test_telemetry_service.py
"""

import json
import tempfile
from pathlib import Path

import pytest
import requests

from trafficlens_channel import EndpointConfig, StreamName, TrafficFrame
from trafficlens_control import CommandRegistry
from trafficlens_processor import ConnectionsPoller, TelemetryConfig, TelemetryService
from trafficlens_usage import SnapshotBatch, UsageLedger, UsageStore


def snapshot(connections, up, down):
    return SnapshotBatch.from_dict({
        "uploadTotal": up,
        "downloadTotal": down,
        "connections": [
            {"id": cid, "upload": u, "download": d, "metadata": {"sourceIP": src}}
            for cid, src, u, d in connections
        ],
    })


class ScriptedPoller:
    def __init__(self, batches=()):
        self.batches = list(batches)
        self.endpoints = []
        self.closed = False

    def fetch(self):
        return self.batches.pop(0) if self.batches else None

    def set_endpoint(self, endpoint):
        self.endpoints.append(endpoint)

    def close(self):
        self.closed = True


class FakeChannel:
    def __init__(self, stream, on_value=None, on_health=None):
        self.stream = stream
        self.on_value = on_value
        self.on_health = on_health
        self.calls = []
        self.connected = False

    def start(self, endpoint=None):
        self.calls.append(("start", endpoint))

    def stop(self):
        self.calls.append(("stop", None))

    def restart(self, endpoint=None):
        self.calls.append(("restart", endpoint))

    def get_stats(self):
        return {'stream': self.stream.value, 'connected': self.connected}


class FakeControlPlane:
    def __init__(self):
        self.command_registry = CommandRegistry()
        self.statuses = []
        self.connected = False

    def connect(self, timeout=5.0):
        self.connected = True
        return True

    def disconnect(self):
        self.connected = False

    def publish_status(self, status, details=None):
        self.statuses.append((status, details))

    def run(self, command, **fields):
        self.command_registry.execute(command, {'command': command, **fields})


class RecordingPublisher:
    def __init__(self):
        self.reports = []
        self.frames = []

    def publish_report(self, report):
        self.reports.append(report)

    def publish_frame(self, message):
        self.frames.append(message)


def make_service(tmp, batches=(), **kwargs):
    config = TelemetryConfig(service_id="test", ledger_path=Path(tmp) / "usage.json")
    return TelemetryService(
        config=config,
        poller=ScriptedPoller(batches),
        channel_factory=FakeChannel,
        clock=iter(range(1000, 2000)).__next__,
        **kwargs
    )


def test_three_tick_scenario():
    with tempfile.TemporaryDirectory() as tmp:
        service = make_service(tmp, batches=[
            snapshot([("c1", "10.0.0.5", 100, 50)], 100, 50),
            snapshot([("c1", "10.0.0.5", 300, 50)], 300, 50),
            snapshot([], 300, 50),
        ])

        assert service.tick()
        assert service.tick()
        assert service.tick()
        assert not service.tick()

        entries = {e.source_identifier: e for e in service.ledger.entries()}
        assert list(entries) == ["10.0.0.5"]
        entry = entries["10.0.0.5"]
        assert (entry.upload, entry.download, entry.total) == (300, 50, 350)
        assert len(service.tracker) == 0
        assert service.ticks == 3
        assert service.skipped_ticks == 1

        # Persisted for the CLI and the next start
        restored = UsageLedger(store=UsageStore(Path(tmp) / "usage.json"))
        assert restored.get("10.0.0.5").total == 350
    print("✓ Three-tick scenario ends with 300/50/350")


def test_global_reset_clears_ledger():
    with tempfile.TemporaryDirectory() as tmp:
        publisher = RecordingPublisher()
        service = make_service(tmp, usage_publisher=publisher)

        service.process_snapshot(snapshot([("c1", "10.0.0.5", 5000, 5000)], 5000, 5000))
        assert len(service.ledger) == 1

        result = service.process_snapshot(snapshot([("n1", "10.0.0.5", 10, 10)], 10, 10))
        assert result.reset
        assert len(service.ledger) == 0
        assert service.resets == 1

        service.process_snapshot(snapshot([("n1", "10.0.0.5", 40, 10)], 40, 10))
        assert service.ledger.get("10.0.0.5").total == 30

        assert [r.reset for r in publisher.reports] == [False, True, False]
        assert publisher.reports[-1].summary['count'] == 1
        assert publisher.reports[-1].entries[0]['source_identifier'] == "10.0.0.5"
    print("✓ Upstream restart clears the ledger, counting resumes")


def test_report_limited_to_top_n():
    with tempfile.TemporaryDirectory() as tmp:
        publisher = RecordingPublisher()
        config = TelemetryConfig(
            service_id="test",
            ledger_path=Path(tmp) / "usage.json",
            report_top_n=2,
        )
        service = TelemetryService(
            config=config,
            poller=ScriptedPoller(),
            channel_factory=FakeChannel,
            usage_publisher=publisher,
        )
        service.process_snapshot(snapshot([
            ("a", "10.0.0.1", 1, 1),
            ("b", "10.0.0.2", 30, 30),
            ("c", "10.0.0.3", 20, 20),
        ], 51, 51), now=5.0)

        report = publisher.reports[-1]
        assert [e['source_identifier'] for e in report.entries] == ["10.0.0.2", "10.0.0.3"]
        assert report.summary['count'] == 3
        assert report.service_id == "test"
    print("✓ Usage report carries the top N entries and the full summary")


def test_control_commands():
    with tempfile.TemporaryDirectory() as tmp:
        plane = FakeControlPlane()
        service = make_service(tmp, control_plane=plane)
        service.setup()

        assert plane.command_registry.available_commands == {
            "clear_usage", "remove_entry", "update_endpoint", "set_details", "status",
        }

        service.process_snapshot(snapshot([
            ("c1", "10.0.0.5", 10, 10),
            ("c2", "10.0.0.6", 20, 20),
        ], 30, 30))

        plane.run("remove_entry", source="10.0.0.5")
        assert "10.0.0.5" not in service.ledger
        assert plane.statuses[-1] == ("entry_removed", {"source": "10.0.0.5", "removed": True})

        plane.run("set_details", expanded=True)
        assert service.ledger.details_expanded is True

        plane.run("clear_usage")
        assert len(service.ledger) == 0
        assert len(service.tracker) == 0
        assert plane.statuses[-1] == ("usage_cleared", None)

        plane.run("status")
        status, details = plane.statuses[-1]
        assert status == "status"
        assert details['service_id'] == "test"
        assert details['details_expanded'] is True
        assert set(details['channels']) == {"traffic", "memory"}
    print("✓ Control commands reach ledger and tracker")


def test_update_endpoint_restarts_channels():
    with tempfile.TemporaryDirectory() as tmp:
        plane = FakeControlPlane()
        service = make_service(tmp, control_plane=plane)
        service.setup()

        plane.run("update_endpoint", host="192.168.1.1", port=9090, secret="s3cret")

        expected = EndpointConfig(host="192.168.1.1", port=9090, token="s3cret")
        assert service.endpoint == expected
        assert service.poller.endpoints == [expected]
        for channel in service.channels.values():
            assert channel.calls == [("restart", expected)]
        assert plane.statuses[-1] == ("endpoint_updated", {"host": "192.168.1.1", "port": 9090})

        plane.run("update_endpoint", port=0)
        assert plane.statuses[-1][0] == "endpoint_rejected"
        assert service.endpoint == expected
    print("✓ Endpoint change restarts every channel and re-points the poller")


def test_endpoint_change_refused_after_stop():
    with tempfile.TemporaryDirectory() as tmp:
        plane = FakeControlPlane()
        service = make_service(tmp, control_plane=plane)
        service.setup()
        service.start()
        service.stop()
        assert plane.connected is False

        original = service.endpoint
        plane.run("update_endpoint", port=9090)

        assert service.endpoint == original
        assert service.poller.endpoints == []
        for channel in service.channels.values():
            assert channel.calls[-1] == ("stop", None)
            assert not any(name == "restart" for name, _ in channel.calls)
        assert plane.statuses[-1] == ("endpoint_rejected", {"error": "service is stopping"})
    print("✓ Stopped service leaves its channels stopped")


def test_channel_frames_are_relayed():
    with tempfile.TemporaryDirectory() as tmp:
        publisher = RecordingPublisher()
        service = make_service(tmp, channel_publisher=publisher)

        traffic = service.channels[StreamName.TRAFFIC]
        traffic.connected = True
        traffic.on_value(TrafficFrame(up=10, down=20))

        message = publisher.frames[-1]
        assert message.stream == "traffic"
        assert message.connected is True
        assert message.value == {"up": 10, "down": 20}
    print("✓ Channel frames relayed to the channel publisher")


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, str):
            return json.loads(self.payload)
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, headers=None, timeout=None):
        self.requests.append((url, headers, timeout))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        pass


def test_poller_parses_connections():
    session = FakeSession(FakeResponse({
        "uploadTotal": 10,
        "downloadTotal": 20,
        "connections": [{"id": "c1", "upload": 10, "download": 20,
                         "metadata": {"sourceIP": "10.0.0.5"}}],
    }))
    poller = ConnectionsPoller(EndpointConfig(port=9091, token="s3cret"), timeout=2.0, session=session)

    batch = poller.fetch()
    assert batch.aggregate_download == 20
    assert batch.connections[0].source_identifier == "10.0.0.5"
    assert session.requests == [(
        "http://127.0.0.1:9091/connections",
        {"Authorization": "Bearer s3cret"},
        2.0,
    )]
    print("✓ Poller sends Bearer auth and parses the snapshot")


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.ConnectionError("refused")),
    FakeSession(FakeResponse({}, status_code=401)),
    FakeSession(FakeResponse("<html>")),
    FakeSession(FakeResponse({"connections": "nope"})),
])
def test_poller_failures_skip_tick(session):
    poller = ConnectionsPoller(EndpointConfig(), session=session)
    assert poller.fetch() is None
    assert poller.failures == 1
    print("✓ Failed poll returns None")


def main():
    print("\n" + "=" * 60)
    print("TELEMETRY SERVICE TESTS")
    print("=" * 60)

    test_three_tick_scenario()
    test_global_reset_clears_ledger()
    test_report_limited_to_top_n()
    test_control_commands()
    test_update_endpoint_restarts_channels()
    test_endpoint_change_refused_after_stop()
    test_channel_frames_are_relayed()
    test_poller_parses_connections()
    test_poller_failures_skip_tick(FakeSession(error=requests.ConnectionError("refused")))

    print("\n✅ ALL SERVICE TESTS PASSED")


if __name__ == "__main__":
    main()
