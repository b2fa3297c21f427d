"""
Tests for link_discovery.py.

Covers:
  1. Static sources (anchors, link rels, frames, forms, data attributes)
  2. Script route heuristics and the path validity filter
  3. Route guessing (common routes, platform pattern families)
  4. Regex fallback when the HTML parser fails
"""

import pytest

from a11y_discovery import link_discovery
from a11y_discovery.link_discovery import (
    COMMON_ROUTES,
    LinkDiscoveryEngine,
    discover_links,
    has_page_extension,
    is_valid_route,
)

BASE = "http://site.test/section/index.html"


@pytest.fixture
def engine():
    return LinkDiscoveryEngine(guess_common_routes=False)


# ====================================================================
# 1. Static sources
# ====================================================================

class TestStaticSources:
    """Markup attributes that directly name another page."""

    def test_anchors_resolved_against_base(self, engine):
        html = '<a href="/about">A</a><a href="contact.html">C</a><a href="http://site.test/x">X</a>'
        links = engine.discover(html, BASE)
        assert links == {
            "http://site.test/about",
            "http://site.test/section/contact.html",
            "http://site.test/x",
        }

    def test_other_domains_dropped(self, engine):
        html = '<a href="https://elsewhere.test/a">E</a><a href="http://sub.site.test/b">S</a>'
        assert engine.discover(html, BASE) == set()

    def test_non_navigable_schemes_dropped(self, engine):
        html = (
            '<a href="mailto:a@site.test">m</a><a href="tel:123">t</a>'
            '<a href="javascript:void(0)">j</a><a href="#top">f</a>'
        )
        assert engine.discover(html, BASE) == set()

    def test_fragment_stripped(self, engine):
        links = engine.discover('<a href="/faq#q3">faq</a>', BASE)
        assert links == {"http://site.test/faq"}

    def test_asset_extensions_dropped(self, engine):
        html = '<a href="/report.pdf">p</a><a href="/logo.png">l</a><a href="/page.php">ok</a>'
        assert engine.discover(html, BASE) == {"http://site.test/page.php"}

    def test_link_rel_only_navigational(self, engine):
        html = (
            '<link rel="stylesheet" href="/main">'
            '<link rel="canonical" href="/canonical-page">'
            '<link rel="next" href="/page-2">'
        )
        assert engine.discover(html, BASE) == {
            "http://site.test/canonical-page",
            "http://site.test/page-2",
        }

    def test_frames_and_forms(self, engine):
        html = '<iframe src="/embedded"></iframe><form action="/search-results"></form>'
        assert engine.discover(html, BASE) == {
            "http://site.test/embedded",
            "http://site.test/search-results",
        }

    def test_data_attributes_and_router_links(self, engine):
        html = (
            '<div data-href="/reports"></div>'
            '<button data-route="/settings/profile"></button>'
            '<router-link to="/courses">Courses</router-link>'
        )
        assert engine.discover(html, BASE) == {
            "http://site.test/reports",
            "http://site.test/settings/profile",
            "http://site.test/courses",
        }


# ====================================================================
# 2. Script heuristics
# ====================================================================

class TestScriptRoutes:
    """Route literals in inline scripts are found without executing them."""

    def test_keyed_routes(self, engine):
        html = """<script>
            const routes = [{ path: '/dashboard' }, { path: "/grades" }];
            router.push({ to: '/inbox' });
        </script>"""
        links = engine.discover(html, BASE)
        assert {"http://site.test/dashboard", "http://site.test/grades",
                "http://site.test/inbox"} <= links

    def test_template_and_param_paths_rejected(self, engine):
        html = """<script>
            const a = { path: '/user/:id' };
            const b = { path: '/item/${id}' };
            const c = { path: '/static/app.js' };
        </script>"""
        assert engine.discover(html, BASE) == set()

    def test_external_scripts_ignored(self, engine):
        html = '<script src="/bundle.js">var x = "/hidden";</script>'
        assert engine.discover(html, BASE) == set()


class TestRouteFilter:
    """Path validity rules for heuristic routes."""

    @pytest.mark.parametrize("path", ["/about", "/a/b/c", "/index.html", "/page.aspx"])
    def test_valid(self, path):
        assert is_valid_route(path)

    @pytest.mark.parametrize("path", [
        "about",                      # relative
        "/" + "x" * 60,               # too long
        "/search?q=1",                # query string
        "//cdn.site.test/a",          # protocol-relative
        "/users/{id}",                # template
        "/users/:id",                 # router param
        "/img/logo.svg",              # asset
    ])
    def test_invalid(self, path):
        assert not is_valid_route(path)

    def test_extensionless_last_segment_is_a_page(self):
        assert has_page_extension("/v1.2/docs")
        assert not has_page_extension("/downloads/file.zip")


# ====================================================================
# 3. Route guessing
# ====================================================================

class TestRouteGuesses:

    def test_common_routes_added_when_enabled(self):
        links = LinkDiscoveryEngine().discover("<html></html>", "http://site.test/")
        for route in COMMON_ROUTES:
            assert f"http://site.test{route}" in links

    def test_disabled_by_flag(self):
        links = discover_links("<html></html>", "http://site.test/", guess_common_routes=False)
        assert links == set()

    def test_pattern_family_from_markup(self):
        html = '<link rel="stylesheet" href="/wp-content/themes/x/style.css">'
        links = LinkDiscoveryEngine(common_routes=[]).discover(html, "http://blog.test/")
        assert "http://blog.test/wp-login.php" in links
        assert "http://blog.test/wp-admin/" in links

    def test_pattern_family_from_hostname(self):
        links = LinkDiscoveryEngine(common_routes=[]).discover("<html></html>", "https://www.state.edu/")
        assert "https://www.state.edu/admissions" in links
        assert "https://www.state.edu/wp-login.php" not in links


# ====================================================================
# 4. Fallback
# ====================================================================

class TestRegexFallback:
    """A parser failure must not cost the page its links."""

    def test_fallback_on_parser_error(self, engine, monkeypatch):
        def broken_parser(*args, **kwargs):
            raise ValueError("parser exploded")

        monkeypatch.setattr(link_discovery, "BeautifulSoup", broken_parser)
        html = (
            '<a href="/about">a</a><iframe src="/frame"></iframe>'
            '<script>go({ route: "/from-script" })</script>'
        )
        links = engine.discover(html, BASE)
        assert {"http://site.test/about", "http://site.test/frame",
                "http://site.test/from-script"} <= links

    def test_empty_document(self, engine):
        assert engine.discover("", BASE) == set()
        assert engine.discover(None, BASE) == set()
