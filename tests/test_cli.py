"""
Tests for the command line, the run configuration and the report writer.
"""

import json

import pytest

from a11y_discovery.__main__ import EXIT_OK, EXIT_SETUP_ERROR, build_parser, main
from a11y_discovery.auth.config import FormAuthConfig
from a11y_discovery.errors import AuthConfigError
from a11y_discovery.models import CrawlReport, PageRecord, PageSource
from a11y_discovery.report import ReportWriter, report_filename
from a11y_discovery.run_config import CrawlerRunConfig
from a11y_discovery.utils import file_timestamp, sanitize_label


def parse(*argv):
    return build_parser().parse_args(list(argv))


class TestCrawlArguments:

    def test_defaults(self):
        args = parse("crawl", "https://site.test/")
        cfg = CrawlerRunConfig.from_cli_args(args)
        assert (cfg.max_depth, cfg.max_pages) == (3, 500)
        assert cfg.rate_delay == 1.0
        assert cfg.headless is True
        assert cfg.interactive is True
        assert cfg.use_auth is False
        assert cfg.auth_config is None
        assert cfg.capture_live_session is False

    @pytest.mark.parametrize("flag,expected", [
        (["--headless=false"], False),
        (["--headless", "no"], False),
        (["--headless"], True),
        (["--headless=TRUE"], True),
    ])
    def test_headless_values(self, flag, expected):
        args = parse("crawl", "https://site.test/", *flag)
        assert args.headless is expected

    def test_headed_run_allows_live_capture(self):
        cfg = CrawlerRunConfig.from_cli_args(parse("crawl", "https://x.test/", "--headless=false"))
        assert cfg.capture_live_session is True

    def test_full_flag_set(self):
        args = parse(
            "crawl", "https://site.test/", "--test-name", "Demo", "--max-depth", "1",
            "--max-pages", "20", "--use-auth", "--no-interactive", "--rate", "0.25",
            "--timeout", "5", "--output-dir", "out", "--auth-state-dir", "states",
            "--auth-config", '{"type": "basic", "loginUrl": "https://site.test/login"}',
        )
        cfg = CrawlerRunConfig.from_cli_args(args)
        assert args.test_name == "Demo"
        assert (cfg.max_depth, cfg.max_pages, cfg.rate_delay) == (1, 20, 0.25)
        assert cfg.timeout_ms == 5000
        assert cfg.use_auth and not cfg.interactive
        assert isinstance(cfg.auth_config, FormAuthConfig)
        assert (cfg.output_dir, cfg.auth_state_dir) == ("out", "states")

    def test_bad_auth_config_json(self):
        args = parse("crawl", "https://site.test/", "--auth-config", "{oops")
        with pytest.raises(AuthConfigError):
            CrawlerRunConfig.from_cli_args(args)

    def test_bad_headless_value_rejected(self):
        with pytest.raises(SystemExit):
            parse("crawl", "https://site.test/", "--headless=maybe")


class TestMain:

    def test_invalid_url_exit_code(self, tmp_path):
        code = main(["crawl", "not a url", "--output-dir", str(tmp_path), "--no-interactive"])
        assert code == EXIT_SETUP_ERROR
        assert list(tmp_path.iterdir()) == []

    def test_invalid_auth_config_exit_code(self):
        assert main(["crawl", "https://site.test/", "--auth-config", "[]"]) == EXIT_SETUP_ERROR

    def test_wizard_list_empty(self, tmp_path, capsys):
        assert main(["wizard", "--auth-state-dir", str(tmp_path), "list"]) == EXIT_OK
        assert "No saved authentication artifacts" in capsys.readouterr().out

    def test_wizard_clear(self, tmp_path):
        (tmp_path / "live-session-site.test-1.json").write_text("{}", encoding="utf-8")
        assert main(["wizard", "--auth-state-dir", str(tmp_path), "clear", "site.test"]) == EXIT_OK
        assert list(tmp_path.iterdir()) == []

    def test_no_command(self, capsys):
        assert main([]) == EXIT_SETUP_ERROR


class TestRunConfig:

    def test_options_block(self):
        cfg = CrawlerRunConfig(max_depth=2, rate_delay=1.5, use_auth=True,
                               auth_config=FormAuthConfig(domain="site.test"))
        options = cfg.to_options()
        assert options["maxDepth"] == 2
        assert options["rateLimitMs"] == 1500
        assert options["timeout"] == 10000
        assert options["userAgent"] == "AccessibilityTestingBot/1.0"
        assert options["authType"] == "basic"


class TestReport:

    def test_filename(self):
        assert report_filename("My Site", "2024-05-01T10:20:30.456Z") == \
            "site-crawl-My-Site-2024-05-01T10-20-30-456Z.json"

    def test_helpers(self):
        assert sanitize_label("a.b/c d") == "a-b-c-d"
        assert ":" not in file_timestamp() and "." not in file_timestamp()

    def test_writer(self, tmp_path):
        report = CrawlReport(
            test_name="site.test", root_url="http://site.test/",
            start_time="2024-05-01T10:00:00.000Z", end_time="2024-05-01T10:05:00.000Z",
            options={"maxDepth": 1},
            pages=[
                PageRecord(url="http://site.test/", depth=0, status_code=200),
                PageRecord(url="http://site.test/a", depth=1, parent_url="http://site.test/",
                           source=PageSource.INTERACTIVE),
            ],
            total_requests=2, successful_requests=2,
        )
        path = ReportWriter(str(tmp_path / "nested" / "reports")).write(report)

        assert path.name == "site-crawl-site-test-2024-05-01T10-05-00-000Z.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) >= {"testName", "rootUrl", "startTime", "options", "summary", "pages", "errors"}
        assert data["summary"]["maxDepthReached"] == 1
        assert data["pages"][1]["parentUrl"] == "http://site.test/"
        assert data["pages"][1]["source"] == "interactive"
        assert report.success_rate == 100.0
