# ============================================================================
# STRUCTURED LOGGING TESTS
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Tests - Log context and formatters
# PURPOSE: Verify context nesting, task isolation and JSON output
# CREATED: 18 OCT 2026
# ============================================================================
"""
Structured Logging Tests

Run with:
    pytest tests/test_logging.py -v
"""

import asyncio
import json
import logging

from core.logging import (
    HumanFormatter,
    StructuredFormatter,
    get_current_context,
    log_context,
)


def make_record(message: str = "Route withdrawn") -> logging.LogRecord:
    return logging.LogRecord("foreman.recycle", logging.INFO, __file__, 10, message, None, None)


class TestLogContext:

    def test_nesting_inherits_and_restores(self):
        with log_context(app_name="docs", app_id="1"):
            with log_context(phase="readiness"):
                ctx = get_current_context()
                assert (ctx.app_name, ctx.app_id, ctx.phase) == ("docs", "1", "readiness")
            assert get_current_context().phase is None
        assert get_current_context().app_name is None

    def test_tasks_see_their_own_context(self):
        async def phase_of(name):
            with log_context(phase=name):
                await asyncio.sleep(0.01)
                return get_current_context().phase

        async def go():
            return await asyncio.gather(phase_of("heartbeat"), phase_of("recycle"))

        assert asyncio.run(go()) == ["heartbeat", "recycle"]


class TestFormatters:

    def test_json_output_carries_context(self):
        with log_context(app_name="docs", app_id="1", signal="SIGTERM", exit_code=0):
            line = StructuredFormatter().format(make_record())

        data = json.loads(line)
        assert data["message"] == "Route withdrawn"
        assert data["level"] == "INFO"
        assert data["context"] == {"app_name": "docs", "app_id": "1", "signal": "SIGTERM", "exit_code": 0}

    def test_human_output_shows_identity_and_phase(self):
        with log_context(app_name="docs", app_id="1", phase="steady"):
            line = HumanFormatter().format(make_record())

        assert "[app=docs-1, phase=steady]" in line
        assert line.endswith("Route withdrawn")
