"""Decide which local branches can be deleted without losing work."""

import calendar
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

from git_main.branches import Branch
from git_main.git import MAIN_BRANCH_NAMES, GitRepo

logger = logging.getLogger(__name__)


class SafetyReason(Enum):
    """Why a branch may or may not be deleted."""

    FULLY_MERGED = "fully merged"
    IDENTICAL_TREE = "identical tree"
    REMOTE_GONE_AND_STALE = "remote gone and stale"
    MAY_CONTAIN_UNIQUE_COMMITS = "may contain unique commits"


@dataclass(frozen=True)
class SafetyVerdict:
    """Result of the mergeability check."""

    safe: bool
    reason: SafetyReason


@dataclass(frozen=True)
class DeletionCandidate:
    """A branch offered for deletion."""

    branch: Branch
    safety_reason: SafetyReason
    age_seconds: int
    unpushed_commit_count: int

    @property
    def name(self) -> str:
        return self.branch.name

    @property
    def age_days(self) -> int:
        return self.age_seconds // 86400


@dataclass(frozen=True)
class StaleScan:
    """Stale branches plus how many remote-gone branches were seen."""

    candidates: list[DeletionCandidate]
    remote_gone_count: int


def months_before(moment: datetime, months: int) -> datetime:
    """Subtract calendar months, clamping the day to the target month's length."""
    index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def select_for_deletion(
    candidates: Sequence[DeletionCandidate],
    limit: int,
    rng: Optional[random.Random] = None,
) -> list[DeletionCandidate]:
    """Pick at most ``limit`` candidates at random and sort them by name."""
    selected = list(candidates)
    if len(selected) > limit:
        selected = (rng or random.Random()).sample(selected, limit)
    return sorted(selected, key=lambda candidate: candidate.name)


class BranchClassifier:
    """Mergeability and staleness checks on top of a GitRepo."""

    def __init__(self, repo: GitRepo, stale_after_months: int = 1) -> None:
        self.repo = repo
        self.stale_after_months = stale_after_months

    def can_safely_delete(
        self,
        branch_name: str,
        main_branch: str,
        merged: Optional[set[str]] = None,
    ) -> SafetyVerdict:
        """Check whether deleting the branch loses no content.

        A branch is safe when its tip is reachable from the main branch, or
        when its tree is identical to main's tree (squash or rebase merges).
        Anything else is treated as possibly holding unique work.

        Args:
            branch_name: Local branch to check
            main_branch: Branch the work should have landed on
            merged: Result of `GitRepo.merged_branches` when checking many branches in a row
        """
        if merged is None:
            merged = self.repo.merged_branches(main_branch)
        if branch_name in merged:
            return SafetyVerdict(safe=True, reason=SafetyReason.FULLY_MERGED)
        if self.repo.branch_tree(branch_name) == self.repo.branch_tree(main_branch):
            return SafetyVerdict(safe=True, reason=SafetyReason.IDENTICAL_TREE)
        return SafetyVerdict(safe=False, reason=SafetyReason.MAY_CONTAIN_UNIQUE_COMMITS)

    def stale_threshold(self, now: datetime) -> datetime:
        """Latest commit time that still counts as stale."""
        return months_before(now.astimezone(timezone.utc), self.stale_after_months)

    def find_stale_branches(
        self,
        main_branch: str,
        remote: str,
        now: Optional[datetime] = None,
    ) -> StaleScan:
        """Find local branches whose remote is gone and whose last commit is old."""
        now = now or datetime.now(timezone.utc)
        threshold = self.stale_threshold(now).timestamp()

        self.repo.prune_remote(remote)
        current = self.repo.get_current_branch_name()
        protected = {current, main_branch, *MAIN_BRANCH_NAMES}

        candidates = []
        remote_gone_count = 0
        for branch in self.repo.list_local_branches():
            if branch.name in protected:
                continue
            if branch.tracking_remote_ref is None:
                logger.debug("%s was never pushed, not stale", branch.name)
                continue
            if not branch.remote_gone:
                continue
            remote_gone_count += 1
            if branch.last_commit_timestamp > threshold:
                logger.debug("%s lost its remote but is too recent", branch.name)
                continue
            candidates.append(
                DeletionCandidate(
                    branch=branch,
                    safety_reason=SafetyReason.REMOTE_GONE_AND_STALE,
                    age_seconds=int(now.timestamp()) - branch.last_commit_timestamp,
                    unpushed_commit_count=self.repo.unpushed_commit_count(branch.name, main_branch),
                )
            )
        return StaleScan(candidates=candidates, remote_gone_count=remote_gone_count)
