"""
Link Discovery Engine
=====================
Turns one fetched document into the set of same-domain URLs worth
visiting next.

Sources (each contributes independently, results are unioned):
    1. ``<a href>`` / ``<link href>`` (navigational ``rel`` only)
    2. ``<iframe src>`` / ``<frame src>``
    3. Route literals in inline ``<script>`` text (regex heuristics,
       the script is never executed)
    4. Framework data attributes (``data-href``, ``routerLink``, ...)
    5. ``<form action>``
    6. Common route guesses plus pattern-family guesses for recognised
       platforms

If BeautifulSoup chokes on the markup, a regex-only pass over the raw
text takes over so a malformed page still yields links.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .utils import is_same_domain, origin_of, resolve_href, strip_fragment

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"


# ---------------------------------------------------------------------------
# Heuristic catalogues
# ---------------------------------------------------------------------------

# Routes that single-page apps commonly expose only through script navigation
COMMON_ROUTES: List[str] = [
    '/app', '/login', '/signup', '/register', '/dashboard', '/profile',
    '/settings', '/account', '/home', '/about', '/contact', '/help',
    '/support', '/pricing', '/features', '/blog', '/blogs', '/news',
    '/docs', '/documentation', '/api', '/terms', '/privacy', '/legal',
    '/admin', '/search', '/sitemap', '/accessibility',
]

# Quoted absolute paths assigned to a routing-ish key: path: "/x", to: '/y'
_KEYED_ROUTE_RE = re.compile(
    r"""\b(?:path|route|to|href|url|action|endpoint)\s*[:=]\s*["'](/[^"'\s]*)["']""",
    re.IGNORECASE,
)
# Any bare quoted absolute path made of route-safe characters: "/some/path"
_QUOTED_PATH_RE = re.compile(r"""["'](/[a-zA-Z0-9\-_/]+(?:\.html?)?)["']""")

# Raw-markup fallback patterns
_RAW_ATTR_RE = re.compile(
    r"""\b(?:href|src|action|data-href|data-url|data-route|data-link)\s*=\s*["']([^"'<>]+)["']""",
    re.IGNORECASE,
)
_RAW_SCRIPT_RE = re.compile(r"<script[^>]*>(.*?)</script>", re.IGNORECASE | re.DOTALL)

# Attributes frameworks use for client-side navigation targets
_DATA_NAV_ATTRIBUTES = (
    'data-href', 'data-url', 'data-route', 'data-link', 'data-navigate',
    'data-path', 'data-target-url', 'routerlink', 'ng-href', 'ui-sref-href',
)

# <link rel=...> values that point at documents rather than assets
_NAV_LINK_RELS = frozenset([
    'alternate', 'canonical', 'next', 'prev', 'previous', 'home', 'index',
    'help', 'search', 'author', 'license', 'first', 'last', 'up',
])

# Extensions that still render as a page
_PAGE_EXTENSIONS = frozenset([
    '.html', '.htm', '.xhtml', '.php', '.asp', '.aspx', '.jsp', '.do', '.cfm',
])

_TEMPLATE_MARKERS = ('{', '}', '$', '<', '>', '%7B', '%7D', '*')

_MAX_ROUTE_LENGTH = 50


@dataclass(frozen=True)
class RoutePatternFamily:
    """Extra route guesses for a recognisable platform.

    ``markers`` are lower-case substrings searched in the hostname and the
    page markup; any hit enables the family's ``routes``.
    """
    name: str
    markers: Sequence[str]
    routes: Sequence[str]

    def matches(self, host: str, markup_lower: str) -> bool:
        return any(m in host or m in markup_lower for m in self.markers)


DEFAULT_PATTERN_FAMILIES: List[RoutePatternFamily] = [
    RoutePatternFamily(
        name="learning-management",
        markers=("moodle", "canvas-lms", "instructure", "blackboard", "d2l"),
        routes=("/my", "/courses", "/course/index.php", "/calendar",
                "/grades", "/conversations", "/user/profile.php"),
    ),
    RoutePatternFamily(
        name="wordpress",
        markers=("wp-content", "wp-includes"),
        routes=("/wp-admin/", "/wp-login.php", "/feed", "/category", "/tag"),
    ),
    RoutePatternFamily(
        name="drupal",
        markers=("drupal-settings-json", "/sites/default/files", "drupal.js"),
        routes=("/user/login", "/user/register", "/node", "/admin/content"),
    ),
    RoutePatternFamily(
        name="university",
        markers=(".edu", ".ac.", "shibboleth", "university"),
        routes=("/students", "/faculty", "/staff", "/admissions",
                "/academics", "/library", "/directory", "/events"),
    ),
]


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def has_page_extension(path: str) -> bool:
    """False when the last path segment carries a non-page file extension."""
    last = path.rsplit('/', 1)[-1]
    if '.' not in last:
        return True
    ext = last[last.rindex('.'):].lower()
    return ext in _PAGE_EXTENSIONS


def is_valid_route(path: str) -> bool:
    """Sanity filter for heuristically discovered paths.

    Rejects long paths, query strings, protocol-relative or doubled
    slashes, unresolved template syntax (``{{id}}``, ``${x}``, ``:param``)
    and non-page file extensions.
    """
    if not path or not path.startswith('/'):
        return False
    if len(path) > _MAX_ROUTE_LENGTH:
        return False
    if '?' in path or '//' in path:
        return False
    if any(marker in path for marker in _TEMPLATE_MARKERS):
        return False
    if any(seg.startswith(':') for seg in path.split('/')):
        return False
    return has_page_extension(path)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class LinkDiscoveryEngine:
    """Pure ``(html, base_url) -> set of absolute same-domain URLs``."""

    def __init__(
        self,
        *,
        guess_common_routes: bool = True,
        common_routes: Optional[Iterable[str]] = None,
        pattern_families: Optional[Iterable[RoutePatternFamily]] = None,
    ):
        self.guess_common_routes = guess_common_routes
        self.common_routes = list(common_routes if common_routes is not None else COMMON_ROUTES)
        self.pattern_families = list(
            pattern_families if pattern_families is not None else DEFAULT_PATTERN_FAMILIES
        )

    def discover(self, html: str, base_url: str) -> Set[str]:
        links: Set[str] = set()
        html = html or ""

        try:
            soup = BeautifulSoup(html, _BS_PARSER)
            self._from_href_attributes(soup, base_url, links)
            self._from_frame_sources(soup, base_url, links)
            self._from_scripts(soup, base_url, links)
            self._from_data_attributes(soup, base_url, links)
            self._from_form_actions(soup, base_url, links)
        except Exception as e:
            logger.debug(f"[LINKS] Parse failed for {base_url[:80]} ({e}) — regex fallback")
            self._regex_fallback(html, base_url, links)

        if self.guess_common_routes:
            self._from_route_guesses(html, base_url, links)

        logger.debug(f"[LINKS] {len(links)} candidate links on {base_url[:80]}")
        return links

    # ── Individual sources ───────────────────────────────────────

    def _from_href_attributes(self, soup, base_url: str, links: Set[str]) -> None:
        for a in soup.find_all('a', href=True):
            self._add(a['href'], base_url, links)

        for link in soup.find_all('link', href=True):
            rels = {r.lower() for r in (link.get('rel') or [])}
            if rels and not rels & _NAV_LINK_RELS:
                continue
            self._add(link['href'], base_url, links)

    def _from_frame_sources(self, soup, base_url: str, links: Set[str]) -> None:
        for frame in soup.find_all(['iframe', 'frame'], src=True):
            self._add(frame['src'], base_url, links)

    def _from_scripts(self, soup, base_url: str, links: Set[str]) -> None:
        for script in soup.find_all('script'):
            if script.get('src'):
                continue
            self._scan_script_text(script.get_text() or "", base_url, links)

    def _from_data_attributes(self, soup, base_url: str, links: Set[str]) -> None:
        for attr in _DATA_NAV_ATTRIBUTES:
            for el in soup.find_all(attrs={attr: True}):
                value = el.get(attr)
                if isinstance(value, list):
                    value = " ".join(value)
                self._add_route_candidate(value, base_url, links)

        # <router-link to="/x"> (Vue) and <Link to="/x"> style components
        for el in soup.find_all(['router-link', 'nuxt-link', 'link'], attrs={'to': True}):
            self._add_route_candidate(el.get('to'), base_url, links)

    def _from_form_actions(self, soup, base_url: str, links: Set[str]) -> None:
        for form in soup.find_all('form', action=True):
            self._add(form['action'], base_url, links)

    def _from_route_guesses(self, html: str, base_url: str, links: Set[str]) -> None:
        origin = origin_of(base_url)
        routes = list(self.common_routes)

        host = (urlparse(base_url).hostname or '').lower()
        markup_lower = html.lower()
        for family in self.pattern_families:
            if family.matches(host, markup_lower):
                logger.debug(f"[LINKS] Pattern family '{family.name}' matched {host}")
                routes.extend(family.routes)

        for route in routes:
            if is_valid_route(route):
                self._add(origin + route, base_url, links)

    def _regex_fallback(self, html: str, base_url: str, links: Set[str]) -> None:
        for match in _RAW_ATTR_RE.finditer(html):
            self._add(match.group(1), base_url, links)
        for match in _RAW_SCRIPT_RE.finditer(html):
            self._scan_script_text(match.group(1), base_url, links)

    # ── Helpers ──────────────────────────────────────────────────

    def _scan_script_text(self, text: str, base_url: str, links: Set[str]) -> None:
        if not text:
            return
        for pattern in (_KEYED_ROUTE_RE, _QUOTED_PATH_RE):
            for match in pattern.finditer(text):
                self._add_route_candidate(match.group(1), base_url, links)

    def _add_route_candidate(self, value: Optional[str], base_url: str, links: Set[str]) -> None:
        if not value:
            return
        value = value.strip()
        path = urlparse(value).path if value.startswith(('http://', 'https://')) else value
        if value.startswith('/') and not is_valid_route(value):
            return
        if path.startswith('/') and not has_page_extension(path):
            return
        self._add(value, base_url, links)

    @staticmethod
    def _add(raw: Optional[str], base_url: str, links: Set[str]) -> None:
        absolute = resolve_href(raw or "", base_url)
        if not absolute or not is_same_domain(absolute, base_url):
            return
        absolute = strip_fragment(absolute)
        if not has_page_extension(urlparse(absolute).path):
            return
        links.add(absolute)


def discover_links(html: str, base_url: str, **kwargs) -> Set[str]:
    """Convenience wrapper around ``LinkDiscoveryEngine().discover``."""
    return LinkDiscoveryEngine(**kwargs).discover(html, base_url)
