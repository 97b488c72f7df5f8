"""The git-main workflow: switch, reconcile, prune and reinstall."""

import logging
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.markup import escape

from git_main.config import GitMainConfig
from git_main.deps import DependencyManager, LockfileSnapshot, PackageManager, Runner
from git_main.errors import DirtyWorkingTreeError, NoTrackingInformationError, UserDeclinedError
from git_main.git import MAIN_BRANCH_NAMES, GitRepo
from git_main.prompt import Prompter
from git_main.safety import BranchClassifier, select_for_deletion

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Workflow stages in execution order."""

    INIT = "init"
    REMOTE_CHECK = "remote check"
    MAIN_BRANCH_RESOLUTION = "main branch resolution"
    FETCH = "fetch"
    DIRTY_CHECK = "dirty check"
    REVERT_PROMPT = "revert prompt"
    BRANCH_SWITCH = "branch switch"
    PULL = "pull"
    MERGED_BRANCH_CLEANUP = "merged branch cleanup"
    STALE_BRANCH_CLEANUP = "stale branch cleanup"
    DEPENDENCY_SYNC = "dependency sync"
    DONE = "done"


class TargetKind(Enum):
    """How the branch to switch to was found."""

    MAIN = "main"  # auto-detected main/master
    LOCAL = "local"
    REMOTE = "remote"  # exists only on the remote
    NEW = "new"  # created after confirmation


@dataclass(frozen=True)
class Target:
    name: str
    kind: TargetKind

    @property
    def explicit(self) -> bool:
        return self.kind is not TargetKind.MAIN


@dataclass(frozen=True)
class RepositoryState:
    """Repository state at one point of the run, re-read after every mutation."""

    current_branch: str
    main_branch: str
    remote_name: str
    is_dirty: bool
    untracked_or_modified_files: list[str] = field(default_factory=list)


@dataclass
class RunSummary:
    """What a run did."""

    target: str = ""
    up_to_date: bool = False
    merged_deleted: list[str] = field(default_factory=list)
    stale_deleted: list[str] = field(default_factory=list)
    reinstalled: Optional[PackageManager] = None


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GitMain:
    """Sequence the repository inspections, confirmations and mutations."""

    def __init__(
        self,
        repo: GitRepo,
        console: Console,
        prompter: Optional[Prompter] = None,
        config: Optional[GitMainConfig] = None,
        dependency_runner: Optional[Runner] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repo = repo
        self.console = console
        self.prompter = prompter or Prompter(console)
        self.config = config or repo.config
        self.classifier = BranchClassifier(repo, stale_after_months=self.config.stale_after_months)
        self.rng = random.Random(self.config.random_seed)
        self.stage = Stage.INIT
        self._dependency_runner = dependency_runner
        self._clock = clock

    def _enter(self, stage: Stage) -> None:
        logger.debug("stage: %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def inspect(self, target: Target, remote: str) -> RepositoryState:
        """Read the current repository state."""
        status = self.repo.status()
        return RepositoryState(
            current_branch=self.repo.get_current_branch_name(),
            main_branch=target.name,
            remote_name=remote,
            is_dirty=status.dirty,
            untracked_or_modified_files=status.files,
        )

    def run(self, branch_name: Optional[str] = None) -> RunSummary:
        """Run the whole workflow.

        Args:
            branch_name: Branch to switch to instead of the auto-detected main/master

        Returns:
            Summary of what was done

        Raises:
            GitMainError: On any condition that must end the run with exit code 1
        """
        summary = RunSummary()

        self._enter(Stage.REMOTE_CHECK)
        # Read-only queries, nothing has been mutated yet
        with ThreadPoolExecutor(max_workers=2) as executor:
            remote_future = executor.submit(self.repo.default_remote)
            root_future = executor.submit(self.repo.toplevel)
            remote = remote_future.result()
            root = root_future.result()
        dependencies = DependencyManager(root, runner=self._dependency_runner)

        self._enter(Stage.MAIN_BRANCH_RESOLUTION)
        target = self._resolve_target(branch_name, remote)
        summary.target = target.name

        self._enter(Stage.FETCH)
        self.repo.fetch(remote)

        lockfile_before = dependencies.snapshot()

        self._enter(Stage.DIRTY_CHECK)
        state = self.inspect(target, remote)
        carried_dirty = state.is_dirty and target.kind is TargetKind.NEW
        if state.is_dirty and not carried_dirty:
            if state.current_branch != target.name:
                raise DirtyWorkingTreeError()
            self._enter(Stage.REVERT_PROMPT)
            self._revert(state)

        self._enter(Stage.BRANCH_SWITCH)
        self._switch(target, remote)

        self._enter(Stage.PULL)
        summary.up_to_date = self._pull(target, carried_dirty)

        if target.kind is TargetKind.MAIN:
            self._enter(Stage.MERGED_BRANCH_CLEANUP)
            if summary.up_to_date:
                self.console.print("skip cleanup, no new commits")
            else:
                summary.merged_deleted = self.delete_merged_branches(target.name)

            self._enter(Stage.STALE_BRANCH_CLEANUP)
            summary.stale_deleted = self.delete_stale_branches(target.name, remote)

        self._enter(Stage.DEPENDENCY_SYNC)
        summary.reinstalled = self._sync_dependencies(dependencies, lockfile_before)

        self._enter(Stage.DONE)
        self.console.print("[green]✓ All done![/green]")
        return summary

    def _resolve_target(self, branch_name: Optional[str], remote: str) -> Target:
        if not branch_name:
            name = self.repo.resolve_main_branch()
            self.console.print(f"switching to main branch: [cyan]{escape(name)}[/cyan]")
            return Target(name, TargetKind.MAIN)

        name = self.repo.resolve_main_branch(branch_name)
        if self.repo.branch_exists(name):
            return Target(name, TargetKind.LOCAL)
        if self.repo.remote_branch_exists(remote, name):
            return Target(name, TargetKind.REMOTE)
        if self.prompter.confirm(f"Branch '{name}' does not exist locally or on remote. Create it?"):
            return Target(name, TargetKind.NEW)
        raise UserDeclinedError(f"Branch '{name}' was not created")

    def _revert(self, state: RepositoryState) -> None:
        self.console.print(
            f"\n⚠️  You are on {escape(state.current_branch)} branch with uncommitted changes:\n"
        )
        for path in state.untracked_or_modified_files:
            self.console.print(f"  {escape(path)}")
        self.console.print()
        if not self.prompter.confirm("💥 Revert all changes?"):
            raise UserDeclinedError("Uncommitted changes were kept")
        self.repo.revert_all_changes()
        self.console.print("🧹 Clean")

    def _switch(self, target: Target, remote: str) -> None:
        if target.kind is TargetKind.NEW:
            self.repo.checkout_new_from(target.name)
            self.console.print(f"🌱 Created branch [cyan]{escape(target.name)}[/cyan]")
        elif target.kind is TargetKind.REMOTE:
            self.repo.checkout_new_tracking(target.name, f"{remote}/{target.name}")
            self.console.print(f"Checked out [cyan]{escape(target.name)}[/cyan] from {escape(remote)}")
        elif self.repo.get_current_branch_name() != target.name:
            self.repo.checkout(target.name)
        else:
            self.console.print("pull")

    def _pull(self, target: Target, carried_dirty: bool) -> bool:
        if carried_dirty:
            self.console.print("Skipping pull, uncommitted changes were carried to the new branch")
            return True
        try:
            result = self.repo.pull()
        except NoTrackingInformationError as err:
            if not target.explicit:
                raise
            self.console.print(f"[dim]{escape(str(err))}, skipping pull[/dim]")
            return True
        return result.up_to_date

    def delete_merged_branches(self, main_branch: str) -> list[str]:
        """Delete every local branch whose content is already on the main branch.

        No confirmation is asked: only branches that are merged or have an
        identical tree are deleted.
        """
        self.console.print("🧹 cleaning up merged branches")
        current = self.repo.get_current_branch_name()
        protected = {main_branch, current, *MAIN_BRANCH_NAMES}
        merged = self.repo.merged_branches(main_branch)

        deleted = []
        for branch in self.repo.list_local_branches():
            if branch.name in protected:
                continue
            verdict = self.classifier.can_safely_delete(branch.name, main_branch, merged)
            if verdict.safe:
                self.repo.delete_branch(branch.name)
                self.console.print(f"Deleting branch {escape(branch.name)} ({verdict.reason.value})")
                deleted.append(branch.name)
            else:
                self.console.print(f"[dim]Keeping branch {escape(branch.name)} ({verdict.reason.value})[/dim]")
                if logger.isEnabledFor(logging.DEBUG):
                    fork_point = self.repo.merge_base(branch.name, main_branch)
                    logger.debug("%s diverged from %s at %s", branch.name, main_branch, fork_point)
        return deleted

    def delete_stale_branches(self, main_branch: str, remote: str) -> list[str]:
        """Offer to delete branches whose remote is gone and whose last commit is old."""
        self.console.print("Cleaning up stale branches...")
        scan = self.classifier.find_stale_branches(main_branch, remote, now=self._clock())

        if not scan.candidates:
            if scan.remote_gone_count == 0:
                self.console.print("No branches with deleted remotes found")
            else:
                self.console.print("No stale branches found matching the criteria.")
            return []

        found = len(scan.candidates)
        limit = self.config.max_stale_selection
        if found > limit:
            self.console.print(f"Found {found} stale branches. Randomly selecting {limit} for deletion.")
        else:
            self.console.print(f"Found {_plural(found, 'branch', 'branches')} to clean up")
        selected = select_for_deletion(scan.candidates, limit, self.rng)

        self.console.print("The following stale branches are selected for deletion:")
        for candidate in selected:
            self.console.print(
                f"  - {escape(candidate.name)} (last commit {candidate.age_days} days ago, "
                f"{_plural(candidate.unpushed_commit_count, 'commit', 'commits')} not on {escape(main_branch)})"
            )

        if not self.prompter.confirm(f"Do you want to delete these {len(selected)} branches?"):
            self.console.print("Branch deletion cancelled")
            return []

        deleted = []
        for candidate in selected:
            self.repo.delete_branch(candidate.name)
            self.console.print(f"Branch {escape(candidate.name)} deleted")
            deleted.append(candidate.name)
        self.console.print(f"🧹 Deleted {_plural(len(deleted), 'branch', 'branches')}")
        return deleted

    def _sync_dependencies(
        self,
        dependencies: DependencyManager,
        before: Optional[LockfileSnapshot],
    ) -> Optional[PackageManager]:
        manager = before.package_manager if before else dependencies.detect()
        if manager is None:
            logger.debug("no lockfile found, skipping dependency sync")
            return None

        after = dependencies.snapshot(manager)
        if before is None:
            before = LockfileSnapshot(package_manager=manager, content=b"")
        if after is None or not after.differs_from(before):
            self.console.print(f"{manager.lockfile} was unchanged")
            return None

        self.console.print(f"📦 Installing dependencies with {manager.value}...")
        dependencies.install(manager)
        return manager
