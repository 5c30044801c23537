import logging

import pytest

from docsync.logging.logger import Log


class TestLogFormatting:
    def test_plain_message_is_unchanged(self) -> None:
        assert Log._format("Worker started", {}) == "Worker started"

    def test_context_is_appended_as_key_value_pairs(self) -> None:
        message = Log._format("Job failed", {"job_id": 7, "kind": "preview"})
        assert message == "Job failed | job_id=7 kind=preview"


class TestLogEmission:
    def test_info_reaches_docsync_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="docsync"):
            Log.info("Preview ready", document_id="abc")

        assert "Preview ready | document_id=abc" in caplog.text

    def test_debug_is_filtered_at_info_level(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="docsync"):
            Log.debug("noise")

        assert "noise" not in caplog.text
