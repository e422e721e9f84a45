from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from shopscrape.config import Settings

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


# A responder maps a requested url to the html served for it, or to an
# exception raised by page.goto.
Response = Union[str, BaseException]
Responder = Callable[[str], Response]


def route_by_host(routes: Dict[str, Response], default: Optional[Response] = None) -> Responder:
    def responder(url: str) -> Response:
        for needle, resp in routes.items():
            if needle in url:
                return resp
        if default is None:
            raise AssertionError(f"unexpected fetch: {url}")
        return default
    return responder


class FakeMouse:
    async def wheel(self, dx, dy):
        pass


class FakePage:
    """The slice of playwright's Page the adapters touch."""

    def __init__(self, responder: Responder, title: str = ""):
        self.responder = responder
        self.mouse = FakeMouse()
        self.url = "about:blank"
        self._html = ""
        self._title = title
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        resp = self.responder(url)
        if isinstance(resp, BaseException):
            raise resp
        self.url = url
        self._html = resp

    async def wait_for_load_state(self, state=None, timeout=None):
        pass

    async def wait_for_selector(self, selector, timeout=None):
        pass

    async def wait_for_timeout(self, ms):
        pass

    async def content(self) -> str:
        return self._html

    async def title(self) -> str:
        if self._title:
            return self._title
        start, end = self._html.find("<title>"), self._html.find("</title>")
        return self._html[start + 7:end] if start != -1 and end != -1 else ""


class FakeSession:
    def __init__(self, responder: Responder):
        self.responder = responder
        self.requested: List[str] = []
        self.headers: List[dict] = []
        self.pages: List[FakePage] = []
        self.closed = False

    @asynccontextmanager
    async def page_scope(self, extra_headers=None):
        assert not self.closed, "page opened on a closed session"
        self.headers.append(dict(extra_headers or {}))

        def tracked(url):
            self.requested.append(url)
            return self.responder(url)

        page = FakePage(tracked)
        self.pages.append(page)
        try:
            yield page
        finally:
            page.closed = True

    async def close(self):
        self.closed = True

    def fetched(self, needle: str) -> int:
        return sum(1 for u in self.requested if needle in u)


class SessionFactory:
    """Hands out one FakeSession per search and remembers them."""

    def __init__(self, responder: Responder):
        self.responder = responder
        self.sessions: List[FakeSession] = []

    async def __call__(self) -> FakeSession:
        s = FakeSession(self.responder)
        self.sessions.append(s)
        return s

    def fetched(self, needle: str) -> int:
        return sum(s.fetched(needle) for s in self.sessions)


@pytest.fixture
def settings() -> Settings:
    return Settings(retries=1, page_timeout_s=5, selector_timeout_ms=0, max_products_per_page=20)


@pytest.fixture
def zalora_html() -> str:
    return load_fixture("zalora_search.html")


@pytest.fixture
def lazada_html() -> str:
    return load_fixture("lazada_search.html")


@pytest.fixture
def shopee_html() -> str:
    return load_fixture("shopee_search.html")


@pytest.fixture
def blocked_html() -> str:
    return load_fixture("blocked.html")


@pytest.fixture
def empty_html() -> str:
    return load_fixture("empty_search.html")
