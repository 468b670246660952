"""
Tests for the pruning run in orchestrator.py

Tests verify repository sequencing, fatal versus skipped failures, and that
dry runs never delete.
"""

import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from registry_pruner.config_manager import PruneConfig
from registry_pruner.error_utils import ErrorCategory, RegistryConnectivityError, TagListingError
from registry_pruner.orchestrator import DeletedItem, PruneReport, SkippedItem, TagPruner
from registry_pruner.pattern_matcher import PatternParseError
from registry_pruner.registry_client import ManifestNotFoundError, RegistryError


class FakeRegistry:
    """In-memory registry collaborator recording every call"""

    def __init__(self, repositories):
        self.repositories = {name: list(tags) for name, tags in repositories.items()}
        self.calls = []
        self.alive = True
        self.list_failures = set()
        self.resolve_failures = {}
        self.delete_failures = {}

    def check_alive(self):
        self.calls.append(("check_alive",))
        if not self.alive:
            raise RegistryError(message="server down or api unimplemented", status_code=404)

    def list_tags(self, repository):
        self.calls.append(("list_tags", repository))
        if repository in self.list_failures:
            raise RegistryError(status_code=500)
        return list(self.repositories[repository])

    def resolve_digest(self, repository, tag):
        self.calls.append(("resolve_digest", repository, tag))
        if (repository, tag) in self.resolve_failures:
            raise self.resolve_failures[(repository, tag)]
        return f"sha256:{repository}-{tag}"

    def delete_by_digest(self, repository, digest):
        self.calls.append(("delete_by_digest", repository, digest))
        if (repository, digest) in self.delete_failures:
            raise self.delete_failures[(repository, digest)]

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


def make_config(repositories, select_rules, except_rules=()):
    return PruneConfig(
        registry_url="https://registry.example.com",
        repositories=tuple(repositories),
        select_rules=tuple(select_rules),
        except_rules=tuple(except_rules),
    )


class TestEndToEnd:
    """The app repository scenario"""

    @pytest.fixture
    def registry(self):
        return FakeRegistry({"app": ["20230101", "20230102", "latest"]})

    def test_not_found_digest_is_skipped_and_other_tag_deleted(self, registry):
        registry.resolve_failures[("app", "20230102")] = ManifestNotFoundError(
            message="image not found", status_code=404
        )
        config = make_config(["app"], ["date:<0"], ["equal:latest"])

        report = TagPruner(registry, config).run()

        assert [(s.repository, s.tag) for s in report.skipped] == [("app", "20230102")]
        assert report.deleted == [DeletedItem("app", "20230101", "sha256:app-20230101")]
        assert registry.called("delete_by_digest") == [("delete_by_digest", "app", "sha256:app-20230101")]

    def test_deletes_every_selected_tag(self, registry):
        config = make_config(["app"], ["date:<0"], ["equal:latest"])

        report = TagPruner(registry, config).run()

        assert not report.has_skipped
        assert {d.tag for d in report.deleted} == {"20230101", "20230102"}
        assert ("resolve_digest", "app", "latest") not in registry.calls

    def test_future_dated_tags_are_not_selected(self):
        tomorrow = (datetime.now() + timedelta(days=1)).strftime("%Y%m%d")
        registry = FakeRegistry({"app": ["20230101", tomorrow]})

        report = TagPruner(registry, make_config(["app"], ["date:<0"])).run()

        assert [d.tag for d in report.deleted] == ["20230101"]


class TestDryRun:
    """Dry run never deletes"""

    def test_resolves_but_never_deletes(self):
        registry = FakeRegistry({"app": ["v1", "v2", "latest"]})
        config = make_config(["app"], ["regexp:^v"])

        report = TagPruner(registry, config, dry_run=True).run()

        assert len(registry.called("resolve_digest")) == 2
        assert registry.called("delete_by_digest") == []
        assert report.deleted == []
        assert report.dry_run is True
        assert report.repositories[0].selected_tags == 2

    def test_failed_resolution_still_skipped(self):
        registry = FakeRegistry({"app": ["v1"]})
        registry.resolve_failures[("app", "v1")] = RegistryError(message="boom")

        report = TagPruner(registry, make_config(["app"], ["equal:v1"]), dry_run=True).run()

        assert report.skipped == [SkippedItem("app", "v1", "digest lookup failed: boom")]


class TestFatalErrors:
    """Failures that stop the whole run"""

    def test_liveness_failure_stops_before_listing(self):
        registry = FakeRegistry({"app": ["v1"]})
        registry.alive = False

        with pytest.raises(RegistryConnectivityError) as exc_info:
            TagPruner(registry, make_config(["app"], ["equal:v1"])).run()

        assert registry.called("list_tags") == []
        assert exc_info.value.category == ErrorCategory.CONNECTION
        assert exc_info.value.details["status_code"] == 404

    def test_listing_failure_stops_remaining_repositories(self):
        registry = FakeRegistry({"one": ["v1"], "two": ["v1"], "three": ["v1"]})
        registry.list_failures.add("two")

        with pytest.raises(TagListingError) as exc_info:
            TagPruner(registry, make_config(["one", "two", "three"], ["equal:v1"])).run()

        assert [c[1] for c in registry.called("list_tags")] == ["one", "two"]
        assert not any(c[1] == "three" for c in registry.calls if len(c) > 1)
        assert exc_info.value.details["repository"] == "two"
        # Work done before the failure is kept
        assert ("delete_by_digest", "one", "sha256:one-v1") in registry.calls

    def test_malformed_rule_stops_run(self):
        registry = FakeRegistry({"one": ["v1"], "two": ["v1"]})

        with pytest.raises(PatternParseError):
            TagPruner(registry, make_config(["one", "two"], ["equal:v1"], ["badformat"])).run()

        assert registry.calls == []

    def test_rules_parsed_once_per_run(self, caplog):
        registry = FakeRegistry({"one": ["20240101"], "two": ["20240101"], "three": []})

        with caplog.at_level(logging.WARNING):
            TagPruner(registry, make_config(["one", "two", "three"], ["date:<>=0"]), dry_run=True).run()

        assert caplog.text.count("matches every date tag") == 1
        assert len(registry.called("list_tags")) == 3


class TestPerTagFailures:
    """Failures on one tag never abort the run"""

    def test_delete_failure_is_skipped_and_run_continues(self):
        registry = FakeRegistry({"one": ["v1", "v2"], "two": ["v1"]})
        registry.delete_failures[("one", "sha256:one-v1")] = RegistryError(status_code=405)

        report = TagPruner(registry, make_config(["one", "two"], ["regexp:^v"])).run()

        assert [(s.repository, s.tag) for s in report.skipped] == [("one", "v1")]
        assert "deletion failed" in report.skipped[0].reason
        assert {(d.repository, d.tag) for d in report.deleted} == {("one", "v2"), ("two", "v1")}

    def test_skipped_items_accumulate_across_repositories(self):
        registry = FakeRegistry({"one": ["v1"], "two": ["v1"]})
        registry.resolve_failures[("one", "v1")] = RegistryError(message="timeout")
        registry.resolve_failures[("two", "v1")] = ManifestNotFoundError(status_code=404)

        report = TagPruner(registry, make_config(["one", "two"], ["equal:v1"])).run()

        assert sorted(str(s) for s in report.skipped) == ["one/v1", "two/v1"]
        assert report.deleted == []

    def test_skipped_items_are_logged_at_the_end(self, caplog):
        registry = FakeRegistry({"app": ["v1"]})
        registry.resolve_failures[("app", "v1")] = RegistryError(message="boom")

        TagPruner(registry, make_config(["app"], ["equal:v1"])).run()

        assert "These tags encountered problems while deleting" in caplog.text
        assert "check them manually" in caplog.text


class TestRepositoryProcessing:
    """Repository ordering and summaries"""

    def test_repositories_processed_in_config_order(self):
        registry = FakeRegistry({"b": [], "a": [], "c": []})

        report = TagPruner(registry, make_config(["b", "a", "c"], ["regexp:."])).run()

        assert [c[1] for c in registry.called("list_tags")] == ["b", "a", "c"]
        assert [r.repository for r in report.repositories] == ["b", "a", "c"]

    def test_summary_counts(self):
        registry = FakeRegistry({"app": ["v1", "v2", "latest"]})

        report = TagPruner(registry, make_config(["app"], ["regexp:."], ["equal:latest"])).run()

        summary = report.repositories[0]
        assert summary.total_tags == 3
        assert summary.selected_tags == 2

    def test_nothing_selected_makes_no_digest_calls(self):
        registry = FakeRegistry({"app": ["latest"]})

        TagPruner(registry, make_config(["app"], ["equal:v1"])).run()

        assert registry.called("resolve_digest") == []

    def test_works_with_mock_client(self):
        client = MagicMock()
        client.list_tags.return_value = ["v1"]
        client.resolve_digest.return_value = "sha256:abc"

        report = TagPruner(client, make_config(["app"], ["equal:v1"])).run()

        client.check_alive.assert_called_once_with()
        client.delete_by_digest.assert_called_once_with("app", "sha256:abc")
        assert report.deleted == [DeletedItem("app", "v1", "sha256:abc")]


class TestPruneReport:
    """Tests for PruneReport"""

    def test_to_dict_summary(self):
        report = PruneReport(registry_url="https://r", dry_run=False)
        report.deleted.append(DeletedItem("app", "v1", "sha256:a"))
        report.skipped.append(SkippedItem("app", "v2", "boom"))

        data = report.to_dict()
        assert data["summary"]["deleted"] == 1
        assert data["summary"]["skipped"] == 1
        assert data["skipped"] == [SkippedItem("app", "v2", "boom")]
        assert report.has_skipped
