"""
Tests for OpenTelemetry tracing of channel operations.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from statechannel.errors import InvalidSignatureA
from statechannel.observability import get_metrics
from statechannel.observability.tracing import (
    create_span,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
)
from statechannel.state import ChannelState


@pytest.fixture
def exporter():
    exporter = InMemorySpanExporter()
    setup_tracing("test-service", exporter=exporter)
    yield exporter
    shutdown_tracing()


class TestTracingSetup:

    def test_setup_returns_tracer(self, exporter):
        assert get_tracer() is not None

    def test_create_span_without_setup(self):
        """Spans before setup go to the global tracer and don't raise"""
        shutdown_tracing()
        with create_span("noop", {"k": "v"}):
            pass

    def test_span_attributes(self, exporter):
        with create_span("work", {"channel_id": "abc", "skipped": None}):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "work"
        assert span.attributes["channel_id"] == "abc"
        assert "skipped" not in span.attributes

    def test_exception_recorded(self, exporter):
        with pytest.raises(RuntimeError):
            with create_span("boom"):
                raise RuntimeError("boom")

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.status.description == "boom"
        assert [e.name for e in span.events] == ["exception"]


class TestChannelSpans:

    def test_operations_are_traced(self, exporter, machine, alice, bob, carol):
        channel_id = machine.open(alice.identity, bob.identity, 60, 10)
        state = ChannelState(balance_a=7, balance_b=3, nonce=1)
        with pytest.raises(InvalidSignatureA):
            machine.update_state(channel_id, state, carol.sign(state), bob.sign(state), alice.identity)
        machine.update_state(channel_id, state, alice.sign(state), bob.sign(state), alice.identity)

        spans = exporter.get_finished_spans()
        assert [s.name for s in spans] == [
            "channel.open",
            "channel.update_state",
            "channel.update_state",
        ]
        assert spans[0].attributes["channel_id"] == channel_id
        assert spans[1].status.status_code == StatusCode.ERROR
        assert [e.name for e in spans[1].events] == ["exception"]
        assert spans[2].status.status_code != StatusCode.ERROR
        assert spans[2].events == ()


def test_metrics_exposition(machine, alice, bob):
    machine.open(alice.identity, bob.identity, 60, 10)
    text = get_metrics()
    assert b"state_channel_operations_total" in text
    assert b"state_channel_open_channels" in text
