"""日志配置测试"""

from __future__ import annotations

import io
import json
import logging

from repolock.utils.logger import reset_logging, setup_logging


class TestSetupLogging:
    def teardown_method(self) -> None:
        reset_logging()

    def test_json_output(self) -> None:
        stream = io.StringIO()
        setup_logging("DEBUG", json_output=True, stream=stream)
        logging.getLogger("repolock.test").info("缓存命中: %s", "a/b@v1")

        entry = json.loads(stream.getvalue().strip())
        assert entry["level"] == "INFO"
        assert entry["logger"] == "repolock.test"
        assert entry["message"] == "缓存命中: a/b@v1"
        assert entry["thread"] == "MainThread"

    def test_repeated_setup_does_not_duplicate(self) -> None:
        stream = io.StringIO()
        setup_logging("INFO", stream=stream)
        setup_logging("INFO", stream=stream)
        logging.getLogger("repolock.test").warning("once")
        assert stream.getvalue().count("once") == 1
        assert len(logging.getLogger().handlers) == 1
