"""
Pruning run orchestration.

A run walks the configured repositories in order. Anything that makes the
tag selection untrustworthy (unreachable registry, a tag list that cannot be
fetched, a malformed rule) stops the whole run. Failures on a single tag are
recorded as skipped items and the run carries on; they are reported together
at the end so an operator can rerun or clean them up by hand.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Tuple

from registry_pruner.config_manager import PruneConfig
from registry_pruner.error_utils import create_registry_connection_error, create_tag_listing_error
from registry_pruner.filter_engine import SelectionSet, compute_selection, parse_patterns
from registry_pruner.logging_utils import get_logger
from registry_pruner.registry_client import RegistryError
from registry_pruner.report_utils import render_skipped_table, render_tag_table


@dataclass(frozen=True)
class SkippedItem:
    """A selected tag whose digest lookup or deletion failed."""

    repository: str
    tag: str
    reason: str = ""

    def __str__(self) -> str:
        return f"{self.repository}/{self.tag}"


@dataclass(frozen=True)
class DeletedItem:
    repository: str
    tag: str
    digest: str


@dataclass
class RepositorySummary:
    repository: str
    total_tags: int
    selected_tags: int


@dataclass
class PruneReport:
    """Outcome of a pruning run."""

    registry_url: str
    dry_run: bool
    started_at: datetime = field(default_factory=datetime.now)
    repositories: List[RepositorySummary] = field(default_factory=list)
    deleted: List[DeletedItem] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)

    @property
    def has_skipped(self) -> bool:
        return bool(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "registry_url": self.registry_url,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "summary": {
                "repositories": len(self.repositories),
                "selected": sum(r.selected_tags for r in self.repositories),
                "deleted": len(self.deleted),
                "skipped": len(self.skipped),
            },
            "repositories": self.repositories,
            "deleted": self.deleted,
            "skipped": self.skipped,
        }


class TagPruner:
    """Runs select/except rules against each repository and deletes matches"""

    def __init__(self, client, config: PruneConfig, dry_run: bool = False):
        """Initialize the pruner

        Args:
            client: Registry collaborator exposing check_alive, list_tags,
                resolve_digest and delete_by_digest
            config: Frozen run configuration
            dry_run: If True, resolve digests and report but never delete
        """
        self.client = client
        self.config = config
        self.dry_run = dry_run
        self.select_patterns = None
        self.except_patterns = None
        self.logger = get_logger(self.__class__.__name__)

    def parse_rules(self) -> None:
        """Parse the select and except rules once for the whole run.

        Raises:
            PatternParseError: If a rule is malformed
        """
        self.select_patterns = parse_patterns(self.config.select_rules)
        self.except_patterns = parse_patterns(self.config.except_rules)

    def check_registry(self) -> None:
        """Fail fast if the registry is not serving the V2 API.

        Raises:
            RegistryConnectivityError: If the liveness check fails
        """
        try:
            self.client.check_alive()
        except RegistryError as e:
            raise create_registry_connection_error(self.config.registry_url, e) from e
        self.logger.info("Checked /v2/, server is alive")

    def select_tags(self, repository: str) -> Tuple[List[str], SelectionSet]:
        """Fetch a repository's tags and compute the selection.

        Returns:
            Tuple of (tag universe, selection)

        Raises:
            TagListingError: If the tag list cannot be fetched
            PatternParseError: If a rule is malformed
        """
        try:
            tags = self.client.list_tags(repository)
        except RegistryError as e:
            raise create_tag_listing_error(self.config.registry_url, repository, e) from e

        if self.select_patterns is None:
            self.parse_rules()
        selection = compute_selection(self.select_patterns, self.except_patterns, tags)
        self.logger.info(f"{repository}: {len(selection)} of {len(tags)} tags marked for deletion")
        return tags, selection

    def prune_tag(self, repository: str, tag: str, report: PruneReport) -> None:
        """Resolve and delete one tag, recording a skipped item on failure."""
        try:
            digest = self.client.resolve_digest(repository, tag)
        except RegistryError as e:
            self.logger.warning(f"  ✗ Error getting manifest digest for {repository}:{tag}: {e}, skipping ..")
            report.skipped.append(SkippedItem(repository, tag, f"digest lookup failed: {e}"))
            return
        self.logger.info(f"  Got digest for {tag}: {digest}")

        if self.dry_run:
            self.logger.info(f"  DRY RUN: would delete {repository}@{digest}")
            return

        try:
            self.client.delete_by_digest(repository, digest)
        except RegistryError as e:
            self.logger.warning(f"  ✗ Error deleting {repository}:{tag}: {e}, skipping ..")
            report.skipped.append(SkippedItem(repository, tag, f"deletion failed: {e}"))
            return
        self.logger.info(f"  ✓ Deleted {repository}:{tag}")
        report.deleted.append(DeletedItem(repository, tag, digest))

    def prune_repository(self, repository: str, report: PruneReport) -> None:
        self.logger.info(f"Working on repo {repository} ...")
        tags, selection = self.select_tags(repository)
        report.repositories.append(
            RepositorySummary(
                repository=repository,
                total_tags=len(tags),
                selected_tags=len(selection),
            )
        )
        if not selection.selected:
            return

        self.logger.info("Tags marked for deletion:\n" + render_tag_table(repository, selection.selected))
        self.logger.info("Deleting tags above..." if not self.dry_run else "DRY RUN: resolving tags above...")
        for tag in selection.selected:
            self.prune_tag(repository, tag, report)

    def run(self) -> PruneReport:
        """Prune every configured repository in order.

        Returns:
            PruneReport with deleted and skipped items

        Raises:
            RegistryConnectivityError, TagListingError, PatternParseError:
                Fatal conditions; no further repository is processed
        """
        report = PruneReport(registry_url=self.config.registry_url, dry_run=self.dry_run)
        self.parse_rules()
        self.check_registry()

        for repository in self.config.repositories:
            self.prune_repository(repository, report)

        self.logger.info("Done!")
        self.log_summary(report)
        return report

    def log_summary(self, report: PruneReport) -> None:
        """Log a deletion summary and the skipped items, if any"""
        mode = "DRY RUN: " if self.dry_run else ""
        self.logger.info(f"📊 {mode}Prune Summary:")
        self.logger.info(f"   Repositories processed: {len(report.repositories)}")
        self.logger.info(f"   Tags selected: {sum(r.selected_tags for r in report.repositories)}")
        if not self.dry_run:
            self.logger.info(f"   Successfully deleted: {len(report.deleted)}")
        self.logger.info(f"   Skipped: {len(report.skipped)}")

        if report.skipped:
            self.logger.warning(
                "These tags encountered problems while deleting:\n" + render_skipped_table(report.skipped)
            )
            self.logger.warning("If there are still problems after rerun, you may have to check them manually.")
