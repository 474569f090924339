"""Shared test fixtures: a scripted stand-in for aiohttp sessions"""
from typing import Any, Dict, List, Optional

import pytest


class FakeResponse:
    def __init__(self, status: int = 200, json_body: Any = None, text_body: str = "", reason: str = ""):
        self.status = status
        self.reason = reason or ("OK" if status < 400 else "Error")
        self._json = json_body
        self._text = text_body

    async def json(self):
        if isinstance(self._json, BaseException):
            raise self._json
        return self._json

    async def text(self):
        return self._text


class _RequestContext:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, http: "FakeHttp"):
        self.http = http

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def get(self, url, params=None, headers=None):
        return _RequestContext(self.http.dispatch("GET", url, params, headers, None))

    def post(self, url, data=None, headers=None):
        return _RequestContext(self.http.dispatch("POST", url, None, headers, data))


class FakeHttp:
    """
    Routes are matched in the order they were added: the method must match,
    ``url_part`` must occur in the URL and ``params`` must be a subset of the
    request's query parameters. Unmatched requests get a 404.
    """

    def __init__(self):
        self.routes: List[Dict[str, Any]] = []
        self.calls: List[Dict[str, Any]] = []

    def add(
        self,
        method: str,
        url_part: str,
        status: int = 200,
        json: Any = None,
        text: str = "",
        params: Optional[Dict[str, str]] = None,
        error: Optional[BaseException] = None,
    ) -> "FakeHttp":
        self.routes.append({
            "method": method,
            "url_part": url_part,
            "params": params or {},
            "outcome": error or FakeResponse(status=status, json_body=json, text_body=text),
        })
        return self

    def dispatch(self, method, url, params, headers, data):
        self.calls.append({"method": method, "url": url, "params": params or {}, "headers": headers or {}, "data": data})
        for route in self.routes:
            if route["method"] != method or route["url_part"] not in url:
                continue
            if any((params or {}).get(k) != v for k, v in route["params"].items()):
                continue
            return route["outcome"]
        return FakeResponse(status=404, reason="Not Found")

    def session_factory(self):
        return FakeSession(self)

    def urls(self, method: str = "GET") -> List[str]:
        return [call["url"] for call in self.calls if call["method"] == method]


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()
