"""
Unit Tests for the Metrics Client Layer

Test Coverage:
- MetricsClient interface implementations
- Backend selection via factory function
- Delegation to the statsd client and tolerance of close failures
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from com.ancill.snipper.app.metrics import (
    MetricsClient,
    NoOpMetricsClient,
    TelegrafCompatibilityClient,
    create_metrics_client,
)


@pytest.fixture
def mock_telegraf_client():
    """Create a mock TelegrafStatsdClient."""
    mock = Mock()
    mock.increment = Mock()
    mock.gauge = Mock()
    mock.timer = Mock()
    mock.connect = AsyncMock()
    mock.close = AsyncMock()
    return mock


class TestMetricsClientInterface:
    def test_interface_is_abstract(self):
        """MetricsClient should be abstract and not instantiable."""
        with pytest.raises(TypeError):
            MetricsClient()

    async def test_noop_client(self):
        """The no-op client accepts every call and does nothing."""
        client = NoOpMetricsClient()
        client.increment("snipper.server.request.count", 1, {"method": "GET"})
        client.gauge("snipper.health.failures", 3)
        client.timer("snipper.server.request.time", 0.25)
        await client.connect()
        await client.close()


class TestTelegrafCompatibilityClient:
    def test_delegates_with_tags(self, mock_telegraf_client):
        client = TelegrafCompatibilityClient(mock_telegraf_client)

        client.increment("snipper.server.request.count", 1, {"status": 200})
        client.timer("snipper.server.request.time", 0.5, {"method": "POST"})
        client.gauge("snipper.health.failures", 7)

        mock_telegraf_client.increment.assert_called_once_with(
            "snipper.server.request.count", 1, tag_dict={"status": 200}
        )
        mock_telegraf_client.timer.assert_called_once_with(
            "snipper.server.request.time", 0.5, tag_dict={"method": "POST"}
        )
        mock_telegraf_client.gauge.assert_called_once_with(
            "snipper.health.failures", 7, tag_dict={}
        )

    async def test_connect_and_close(self, mock_telegraf_client):
        client = TelegrafCompatibilityClient(mock_telegraf_client)
        await client.connect()
        await client.close()

        mock_telegraf_client.connect.assert_awaited_once()
        mock_telegraf_client.close.assert_awaited_once()

    async def test_close_failure_is_logged_not_raised(self, mock_telegraf_client):
        """Shutdown continues when the statsd client fails to close."""
        mock_telegraf_client.close = AsyncMock(side_effect=OSError("socket gone"))
        client = TelegrafCompatibilityClient(mock_telegraf_client)
        await client.close()


class TestMetricsClientFactory:
    def test_factory_creates_noop_client(self):
        assert isinstance(create_metrics_client("none"), NoOpMetricsClient)

    def test_factory_is_case_insensitive(self):
        assert isinstance(create_metrics_client("NONE"), NoOpMetricsClient)

    @patch("com.ancill.snipper.app.metrics.TelegrafStatsdClient")
    def test_factory_creates_telegraf_client(self, mock_telegraf_class):
        client = create_metrics_client("telegraf", host="telegraf", port=8125, debug=True)

        assert isinstance(client, TelegrafCompatibilityClient)
        mock_telegraf_class.assert_called_once_with(
            host="telegraf", port=8125, debug=True
        )

    def test_factory_uses_preconfigured_client(self, mock_telegraf_client):
        client = create_metrics_client("telegraf", telegraf_client=mock_telegraf_client)
        assert client.client is mock_telegraf_client

    def test_factory_rejects_unknown_backend(self):
        with pytest.raises(ValueError, match="Invalid metrics backend: otel"):
            create_metrics_client("otel")
