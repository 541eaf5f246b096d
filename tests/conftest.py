"""Shared fakes for tests that talk to an origin."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest


def make_response(url: str, status_code: int, body: bytes = b"") -> MagicMock:
    resp = MagicMock()
    resp.url = url
    resp.status_code = status_code
    resp.content = body
    resp.headers = {"Content-Length": str(len(body))}
    return resp


class FakeOrigin:
    """Stands in for requests.Session.

    Route values: bytes -> 200 with that body, int -> that status with an
    empty body, an exception instance -> raised, a list -> consumed one
    outcome per call. Unknown URLs answer 404.
    """

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, object, dict]] = []

    def get(self, url, timeout=None, headers=None):
        self.calls.append((url, timeout, dict(headers or {})))
        outcome = self.routes.get(url, 404)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return make_response(url, outcome)
        return make_response(url, 200, outcome)

    @property
    def urls(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def export_root(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    return root
