"""
Tests for sitemap.py: <loc> parsing and candidate probing.
"""

import asyncio

from a11y_discovery.models import PageSource
from a11y_discovery.sitemap import SITEMAP_CANDIDATES, SitemapProbe, parse_sitemap_locs

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>http://site.test/</loc></url>
  <url><loc> http://site.test/about </loc></url>
  <url><loc>https://cdn.other.test/asset</loc></url>
</urlset>"""


def _probe(responses):
    calls = []

    def fetch_text(url):
        calls.append(url)
        value = responses.get(url)
        if isinstance(value, Exception):
            raise value
        return value

    return SitemapProbe(fetch_text=fetch_text), calls


class TestParseLocs:

    def test_namespaced_urlset(self):
        assert parse_sitemap_locs(URLSET) == [
            "http://site.test/",
            "http://site.test/about",
            "https://cdn.other.test/asset",
        ]

    def test_malformed_xml_falls_back_to_regex(self):
        broken = "<urlset><url><loc>http://site.test/a</loc></url><url><loc>http://site.test/b</loc>"
        assert parse_sitemap_locs(broken) == ["http://site.test/a", "http://site.test/b"]

    def test_empty(self):
        assert parse_sitemap_locs("") == []


class TestSitemapProbe:

    def test_candidates_in_order(self):
        assert SITEMAP_CANDIDATES == ('/sitemap.xml', '/sitemap_index.xml', '/sitemaps/sitemap.xml')

    def test_records_are_same_domain_and_tagged(self):
        probe, _ = _probe({"http://site.test/sitemap.xml": URLSET})
        records = asyncio.run(probe.probe("http://site.test/start"))

        assert [r.url for r in records] == ["http://site.test/", "http://site.test/about"]
        for r in records:
            assert r.source == PageSource.SITEMAP
            assert r.depth == 0
            assert r.parent_url == "sitemap.xml"
            assert r.title == "From Sitemap"
            assert r.status_code == "unknown"
        assert probe.sitemap_url == "http://site.test/sitemap.xml"

    def test_stops_at_first_productive_candidate(self):
        probe, calls = _probe({
            "http://site.test/sitemap.xml": None,
            "http://site.test/sitemap_index.xml": URLSET,
            "http://site.test/sitemaps/sitemap.xml": URLSET,
        })
        asyncio.run(probe.probe("http://site.test/"))
        assert calls == ["http://site.test/sitemap.xml", "http://site.test/sitemap_index.xml"]

    def test_foreign_only_sitemap_keeps_probing(self):
        foreign = "<urlset><url><loc>http://other.test/</loc></url></urlset>"
        probe, calls = _probe({
            "http://site.test/sitemap.xml": foreign,
            "http://site.test/sitemap_index.xml": ConnectionError("refused"),
            "http://site.test/sitemaps/sitemap.xml": URLSET,
        })
        records = asyncio.run(probe.probe("http://site.test/"))
        assert len(calls) == 3
        assert len(records) == 2

    def test_no_sitemap(self):
        probe, calls = _probe({})
        assert asyncio.run(probe.probe("http://site.test/")) == []
        assert len(calls) == 3
        assert probe.sitemap_url is None
