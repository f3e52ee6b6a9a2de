"""Tests for HAProxy reference extraction and reload."""

from __future__ import annotations

from pathlib import Path

import pytest

from haproxy_certrenewal.errors import ReloadError
from haproxy_certrenewal.haproxy import (
    ProxyCertReference,
    ReferenceKind,
    extract_references,
    parse_config_directives,
    parse_crt_list,
    read_proxy_references,
    reload_haproxy,
)


# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------


class TestParseConfigDirectives:
    def test_direct_crt(self):
        certs, lists = parse_config_directives(
            "frontend https\n"
            "  bind :443 ssl crt /etc/letsencrypt/live/new.org/haproxy.pem alpn h2\n"
        )
        assert certs == ["/etc/letsencrypt/live/new.org/haproxy.pem"]
        assert lists == []

    def test_multiple_crt_on_one_line(self):
        certs, _ = parse_config_directives("bind :443 ssl crt /a/x.com/haproxy.pem crt /a/y.com/haproxy.pem\n")
        assert certs == ["/a/x.com/haproxy.pem", "/a/y.com/haproxy.pem"]

    def test_crt_list_is_not_a_direct_reference(self):
        certs, lists = parse_config_directives("bind :443 ssl crt-list /etc/haproxy/crtlist.txt\n")
        assert certs == []
        assert lists == [("/etc/haproxy/crtlist.txt", None)]

    def test_comments_ignored(self):
        certs, lists = parse_config_directives(
            "# bind :443 ssl crt /old/haproxy.pem\n"
            "bind :8443 ssl crt /new/a.com/haproxy.pem # crt /ignored.pem\n"
        )
        assert certs == ["/new/a.com/haproxy.pem"]

    def test_crt_base_resolves_relative_paths(self):
        certs, lists = parse_config_directives(
            "global\n"
            "  crt-base /etc/letsencrypt/live\n"
            "frontend https\n"
            "  bind :443 ssl crt a.com/haproxy.pem crt /abs/b.com/haproxy.pem crt-list lists/extra.txt\n"
        )
        assert certs == ["/etc/letsencrypt/live/a.com/haproxy.pem", "/abs/b.com/haproxy.pem"]
        assert lists == [("/etc/letsencrypt/live/lists/extra.txt", "/etc/letsencrypt/live")]


class TestParseCrtList:
    def test_paths_with_options(self):
        text = (
            "# managed list\n"
            "\n"
            "/etc/letsencrypt/live/a.com/haproxy.pem\n"
            "/etc/letsencrypt/live/b.com/haproxy.pem [alpn h2] b.com\n"
        )
        assert parse_crt_list(text) == [
            "/etc/letsencrypt/live/a.com/haproxy.pem",
            "/etc/letsencrypt/live/b.com/haproxy.pem",
        ]


class TestExtractReferences:
    def test_direct_and_list_references(self, tmp_path: Path):
        crt_list = tmp_path / "crtlist.txt"
        crt_list.write_text("/certs/b.com/haproxy.pem\n/certs/a.com/haproxy.pem\n")
        config = (
            f"bind :443 ssl crt /certs/a.com/haproxy.pem\n"
            f"bind :8443 ssl crt-list {crt_list}\n"
        )

        refs = extract_references(config, source="haproxy.cfg")

        assert refs == [
            ProxyCertReference("/certs/a.com/haproxy.pem", ReferenceKind.DIRECT, "haproxy.cfg"),
            ProxyCertReference("/certs/b.com/haproxy.pem", ReferenceKind.VIA_LIST, str(crt_list)),
        ]

    def test_missing_list_file_is_not_fatal(self, tmp_path: Path):
        config = (
            f"bind :443 ssl crt-list {tmp_path / 'missing.txt'}\n"
            "bind :443 ssl crt /certs/a.com/haproxy.pem\n"
        )
        refs = extract_references(config)
        assert [r.path for r in refs] == ["/certs/a.com/haproxy.pem"]

    def test_list_entries_resolved_against_crt_base(self, tmp_path: Path):
        crt_list = tmp_path / "crtlist.txt"
        crt_list.write_text("a.com/haproxy.pem\n/abs/b.com/haproxy.pem [alpn h2]\n")
        config = (
            "crt-base /etc/letsencrypt/live\n"
            f"bind :443 ssl crt-list {crt_list}\n"
        )

        refs = extract_references(config)

        assert [r.path for r in refs] == [
            "/etc/letsencrypt/live/a.com/haproxy.pem",
            "/abs/b.com/haproxy.pem",
        ]

    def test_directory_form_detected(self, tmp_path: Path):
        (tmp_path / "certs").mkdir()
        assert ProxyCertReference(str(tmp_path / "certs"), ReferenceKind.DIRECT).is_directory is True
        assert ProxyCertReference("/etc/haproxy/certs/", ReferenceKind.DIRECT).is_directory is True
        assert ProxyCertReference("/x/a.com/haproxy.pem", ReferenceKind.DIRECT).is_directory is False

    def test_implied_base_domain(self):
        ref = ProxyCertReference("/etc/letsencrypt/live/new.org/haproxy.pem", ReferenceKind.DIRECT)
        assert ref.implied_base_domain == "new.org"

    def test_read_missing_config(self, tmp_path: Path):
        assert read_proxy_references(tmp_path / "haproxy.cfg") == []

    def test_read_config_file(self, tmp_path: Path):
        cfg = tmp_path / "haproxy.cfg"
        cfg.write_text("bind :443 ssl crt /certs/a.com/haproxy.pem\n")
        refs = read_proxy_references(cfg)
        assert [r.source for r in refs] == [str(cfg)]


# ---------------------------------------------------------------------------
# Reload
# ---------------------------------------------------------------------------


class TestReloadHaproxy:
    def test_no_reload_without_changes(self, fake_run):
        assert reload_haproxy("service haproxy reload", []) is False
        assert fake_run.calls == []

    def test_reload_once_with_changes(self, fake_run):
        assert reload_haproxy("service haproxy reload", ["a.com", "b.com"]) is True
        assert fake_run.calls == [["service", "haproxy", "reload"]]

    def test_reload_failure_raises(self, fake_run):
        fake_run.handler = lambda cmd: 1
        with pytest.raises(ReloadError):
            reload_haproxy("systemctl reload haproxy", ["a.com"])

    def test_missing_reload_binary(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("nope")

        monkeypatch.setattr("haproxy_certrenewal.haproxy.subprocess.run", missing)
        with pytest.raises(ReloadError):
            reload_haproxy("does-not-exist reload", ["a.com"])
