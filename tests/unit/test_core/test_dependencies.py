"""Tests for FastAPI dependency injection module."""

from unittest.mock import MagicMock, patch

from kmz_processor.core.dependencies import get_job_queue


class TestGetJobQueue:
    """Tests for get_job_queue."""

    def test_queue_uses_configured_name(self, settings) -> None:
        settings.queue_name = "kmz-test"
        factory = MagicMock()
        with (
            patch("kmz_processor.core.dependencies.get_settings", return_value=settings),
            patch("kmz_processor.core.dependencies.get_session_factory", return_value=factory),
        ):
            queue = get_job_queue()

        assert queue.name == "kmz-test"
        assert queue._session_factory is factory
