from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _detach_event_sink():
    """Keep one test's project log from receiving another test's events."""
    yield
    from gamesheet.logging import reset_sink

    reset_sink()
