"""
Unit tests for the error taxonomy and the server supervisor.
"""

import asyncio

import pytest

from glossa.communication.errors import (
    CancelledOperationError,
    CoordinationError,
    ExternalServiceError,
    NotFoundError,
    ProtocolError,
    QueueFullError,
    TransportError,
)
from glossa.server import ConlangServer


@pytest.mark.unit
class TestErrors:
    """Tests for error kinds and fatality."""

    def test_transport_and_not_found_are_not_fatal(self):
        assert TransportError("gone").fatal is False
        assert NotFoundError("AGENT_A").fatal is False

    def test_everything_else_is_fatal(self):
        for error in (ProtocolError(), QueueFullError(), CancelledOperationError(), ExternalServiceError()):
            assert error.fatal is True

    def test_fatal_can_be_overridden(self):
        assert ExternalServiceError("model down", fatal=False).fatal is False

    def test_message_carries_kind(self):
        assert str(NotFoundError("AGENT_A")) == "not found: AGENT_A"
        assert str(QueueFullError()) == "queue full"
        assert isinstance(QueueFullError(), CoordinationError)


@pytest.mark.unit
@pytest.mark.engine
class TestSupervisor:
    """Tests for ConlangServer supervision."""

    @pytest.mark.asyncio
    async def test_supervise_skips_non_fatal_errors(self, server_config, seed_generation):
        server = ConlangServer(server_config(), seed=seed_generation)
        server.channels.report(TransportError("AGENT_A is gone"))
        server.channels.report(NotFoundError("no system agent"))
        fatal = ProtocolError("bad frame")
        server.channels.report(fatal)

        assert await asyncio.wait_for(server.supervise(), 1.0) is fatal
        assert server.channels.errors.empty()

    @pytest.mark.asyncio
    async def test_run_stops_on_fatal_error(self, server_config, seed_generation):
        server = ConlangServer(server_config(target_agents=5), seed=seed_generation)
        fatal = CancelledOperationError("system agent never replied")

        async def fail_soon():
            await asyncio.sleep(0.05)
            server.channels.report(fatal)

        reporter = asyncio.ensure_future(fail_soon())
        result = await asyncio.wait_for(server.run(serve_http=False), 2.0)
        await reporter

        assert result is fatal
        assert server._tasks == []

    @pytest.mark.asyncio
    async def test_failed_task_is_reported(self, server_config, seed_generation):
        server = ConlangServer(server_config(), seed=seed_generation)

        async def boom():
            raise ProtocolError("unexpected reply")

        server._spawn("boom", boom())
        error = await asyncio.wait_for(server.channels.errors.get(), 1.0)

        assert isinstance(error, ProtocolError)
        await server.shutdown()
