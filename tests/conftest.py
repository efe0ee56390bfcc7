# tests/conftest.py
"""Shared fixtures: scripted oracles standing in for the LLM, page builders."""

import threading
import time

import pytest


class ScriptedOracle:
    """Oracle returning canned payloads keyed by segment index.

    A response is a dict / PartialRecord (returned), an exception instance
    (raised), or a list of those consumed one per call, the last entry
    repeating.
    """

    def __init__(self, responses=None, default=None, delays=None, on_call=None):
        self.responses = {k: list(v) if isinstance(v, list) else v for k, v in (responses or {}).items()}
        self.default = default if default is not None else {}
        self.delays = dict(delays or {})
        self.on_call = on_call
        self.calls = []
        self.contexts = []
        self.texts = []
        self._lock = threading.Lock()

    def extract(self, segment_text, context):
        with self._lock:
            self.calls.append(context.segment_index)
            self.contexts.append(context)
            self.texts.append(segment_text)
            response = self.responses.get(context.segment_index, self.default)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
        if self.on_call is not None:
            self.on_call(context.segment_index)
        delay = self.delays.get(context.segment_index)
        if delay:
            time.sleep(delay)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def scripted_oracle():
    return ScriptedOracle


@pytest.fixture
def make_pages():
    from ledgerx.documents.models import PageText

    def _make(*texts):
        return [PageText(page_number=i + 1, text=t) for i, t in enumerate(texts)]

    return _make


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """Isolate LedgerxConfig from the user's environment and home directory."""
    from ledgerx.config import get_config

    monkeypatch.setenv("LEDGERX_HOME_DIR", str(tmp_path / "home"))
    get_config.cache_clear()
    yield get_config
    get_config.cache_clear()
