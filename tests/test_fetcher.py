"""
Tests for fetcher.py, events.py and utils.py.
"""

import asyncio

import pytest
import requests

from a11y_discovery.errors import FetchError
from a11y_discovery.events import CrawlPhase, EventChannel
from a11y_discovery.fetcher import HttpFetcher, summarize_html
from a11y_discovery.utils import is_same_domain, is_valid_url, resolve_href, strip_fragment


class FakeResponse:
    def __init__(self, url, status_code=200, text="", headers=None):
        self.url = url
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []
        self.closed = False

    def get(self, url, headers=None, timeout=None, allow_redirects=True):
        self.requests.append((url, headers, timeout))
        if self.error:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


class TestHttpFetcher:

    def test_success(self):
        html = "<html><head><title> Home  Page </title></head><body><p>one two three</p><script>x()</script></body></html>"
        session = FakeSession(FakeResponse(
            "http://site.test/home", text=html,
            headers={"Content-Type": "text/html", "Last-Modified": "Wed, 01 May 2024 10:00:00 GMT"},
        ))
        fetcher = HttpFetcher(user_agent="UA/1", timeout=3, session=session,
                              extra_headers={"X-Key": "k"})
        result = asyncio.run(fetcher.fetch("http://site.test/"))

        assert result.final_url == "http://site.test/home"
        assert result.redirected
        assert result.title == "Home Page"
        assert result.word_count == 3
        assert result.last_modified.startswith("Wed")
        _, headers, timeout = session.requests[0]
        assert headers["User-Agent"] == "UA/1"
        assert headers["X-Key"] == "k"
        assert timeout == 3

    def test_http_error_status(self):
        fetcher = HttpFetcher(session=FakeSession(FakeResponse("http://site.test/x", 503)))
        with pytest.raises(FetchError) as exc:
            asyncio.run(fetcher.fetch("http://site.test/x"))
        assert exc.value.status_code == 503

    @pytest.mark.parametrize("error,text", [
        (requests.Timeout("slow"), "Timeout"),
        (requests.ConnectionError("refused"), "Request failed"),
    ])
    def test_transport_errors(self, error, text):
        fetcher = HttpFetcher(session=FakeSession(error=error))
        with pytest.raises(FetchError, match=text):
            asyncio.run(fetcher.fetch("http://site.test/"))

    def test_non_html_body_not_parsed(self):
        session = FakeSession(FakeResponse("http://site.test/feed", text="<rss/>",
                                           headers={"Content-Type": "application/json"}))
        result = asyncio.run(HttpFetcher(session=session).fetch("http://site.test/feed"))
        assert result.html == ""
        assert result.word_count == 0

    def test_added_headers_sent(self):
        session = FakeSession(FakeResponse("http://site.test/", text="<p>hi</p>",
                                           headers={"Content-Type": "text/html"}))
        fetcher = HttpFetcher(session=session)
        fetcher.add_headers({"X-Key": "k"})
        asyncio.run(fetcher.fetch("http://site.test/"))
        _, headers, _ = session.requests[0]
        assert headers["X-Key"] == "k"
        assert headers["User-Agent"] == "AccessibilityTestingBot/1.0"

    def test_close(self):
        session = FakeSession()
        asyncio.run(HttpFetcher(session=session).close())
        assert session.closed


class TestSummarizeHtml:

    def test_untitled(self):
        assert summarize_html("<p>just words here</p>") == ("", 3)


class TestEventChannel:

    def test_sinks_receive_events_in_order(self):
        received = []
        channel = EventChannel([received.append])
        channel.emit(CrawlPhase.START, "go", url="http://site.test/")
        channel.emit(CrawlPhase.TRAVERSAL, "fetch", visited=1)

        assert [e.phase for e in received] == [CrawlPhase.START, CrawlPhase.TRAVERSAL]
        assert received[1].counters == {"visited": 1}
        assert channel.history == received

    def test_failing_sink_isolated(self):
        received = []

        def bad(event):
            raise RuntimeError("boom")

        channel = EventChannel([bad, received.append])
        channel.emit(CrawlPhase.DONE, "finished")
        assert len(received) == 1


class TestUrlHelpers:

    def test_strip_fragment(self):
        assert strip_fragment("http://site.test/a#b") == "http://site.test/a"

    def test_valid_url(self):
        assert is_valid_url("https://site.test")
        assert not is_valid_url("mailto:x@site.test")

    def test_same_domain_is_hostname_exact(self):
        assert is_same_domain("https://SITE.test:8443/a", "http://site.test/")
        assert not is_same_domain("http://www.site.test/", "http://site.test/")
        assert not is_same_domain("ftp://site.test/", "http://site.test/")

    def test_resolve_href(self):
        assert resolve_href("../up", "http://site.test/a/b/") == "http://site.test/a/up"
        assert resolve_href("  #frag", "http://site.test/") is None
        assert resolve_href("JavaScript:void(0)", "http://site.test/") is None
