"""Tests for certificate store discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from haproxy_certrenewal.errors import StoreNotFoundError
from haproxy_certrenewal.store import scan_store, split_version

from conftest import write_domain


class TestSplitVersion:
    def test_plain_folder(self):
        assert split_version("example.com") == ("example.com", 0)

    def test_versioned_folder(self):
        assert split_version("example.com-0002") == ("example.com", 2)

    def test_hyphenated_domain_without_version(self):
        assert split_version("my-site.org") == ("my-site.org", 0)


class TestScanStore:
    def test_selects_highest_version(self, store: Path):
        write_domain(store, "example.com")
        write_domain(store, "example.com-0001")
        write_domain(store, "example.com-0002")

        scan = scan_store(store)

        assert len(scan.records) == 1
        record = scan.records[0]
        assert record.base_domain == "example.com"
        assert record.version_folder == store / "example.com-0002"
        assert record.cert_path == store / "example.com-0002" / "cert.pem"
        assert record.private_key_path == store / "example.com-0002" / "privkey.pem"
        assert record.full_chain_path == store / "example.com-0002" / "fullchain.pem"
        assert record.bundle_path == store / "example.com-0002" / "haproxy.pem"

    def test_numeric_not_lexical_version_order(self, store: Path):
        write_domain(store, "example.com-0009")
        write_domain(store, "example.com-0010")

        scan = scan_store(store)

        assert scan.records[0].version_folder.name == "example.com-0010"

    def test_one_record_per_domain_sorted(self, store: Path):
        write_domain(store, "b.com")
        write_domain(store, "a.com-0001")
        write_domain(store, "a.com")
        write_domain(store, "c.org")

        scan = scan_store(store)

        assert scan.domains == ["a.com", "b.com", "c.org"]
        assert scan.folders_scanned == 4

    def test_ignores_plain_files(self, store: Path):
        (store / "README").write_text("certbot readme")
        write_domain(store, "a.com")

        scan = scan_store(store)

        assert scan.domains == ["a.com"]
        assert scan.folders_scanned == 1

    def test_empty_newer_folder_is_skipped(self, store: Path):
        write_domain(store, "a.com")
        (store / "a.com-0001").mkdir()

        scan = scan_store(store)

        assert scan.folders_without_cert == ["a.com-0001"]
        assert scan.folders_scanned == 2
        record = scan.records[0]
        assert record.version_folder.name == "a.com"
        assert record.has_certificate is True

    def test_domain_without_any_certificate(self, store: Path):
        (store / "gone.com").mkdir()
        (store / "gone.com-0001").mkdir()

        scan = scan_store(store)

        assert scan.domains == ["gone.com"]
        record = scan.records[0]
        assert record.version_folder.name == "gone.com-0001"
        assert record.has_certificate is False

    def test_missing_root_is_fatal(self, tmp_path: Path):
        with pytest.raises(StoreNotFoundError):
            scan_store(tmp_path / "missing")

    def test_empty_store(self, store: Path):
        scan = scan_store(store)
        assert scan.records == []
