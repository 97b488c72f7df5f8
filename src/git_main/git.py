"""Git repository operations."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from git_main.branches import Branch, parse_branch_listing
from git_main.config import GitMainConfig
from git_main.errors import (
    NoRemoteError,
    NotAGitRepositoryError,
    NoTrackingInformationError,
    OperationError,
    RepositoryEnvironmentError,
)

logger = logging.getLogger(__name__)

MAIN_BRANCH_NAMES = ("main", "master")
PREFERRED_REMOTE = "origin"


@dataclass(frozen=True)
class WorkingTreeStatus:
    """Uncommitted state of the working tree."""

    dirty: bool
    files: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PullResult:
    """Outcome of updating the current branch from its upstream."""

    up_to_date: bool
    output: str = ""


def _is_up_to_date(output: str) -> bool:
    # git < 2.15 prints "Already up-to-date."
    return "already up to date" in output.lower().replace("-", " ")


def _porcelain_path(line: str) -> str:
    path = line[3:]
    if " -> " in path:
        path = path.split(" -> ", 1)[1]
    return path


class GitRepo:
    """Git repository inspection and mutation.

    Every query goes to git again, so answers always reflect the latest
    mutation made through this object.
    """

    def __init__(self, config: GitMainConfig) -> None:
        """Open the repository containing ``config.path``.

        Raises:
            NotAGitRepositoryError: If the path is not inside a git work tree
        """
        self.config = config
        try:
            self.repo: Repo = Repo(config.path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as err:
            raise NotAGitRepositoryError() from err
        if self.repo.bare:
            raise RepositoryEnvironmentError("Cannot operate on bare repository")
        if config.git_env:
            self.repo.git.update_environment(**config.git_env)
        self.fetch_failed = False

    def default_remote(self) -> str:
        """Name of the remote to prune and pull from.

        Raises:
            NoRemoteError: If no remote is configured
        """
        remotes = [name.strip() for name in self.repo.git.remote().splitlines() if name.strip()]
        if not remotes:
            raise NoRemoteError()
        if PREFERRED_REMOTE in remotes:
            return PREFERRED_REMOTE
        return remotes[0]

    def toplevel(self) -> Path:
        """Root directory of the working tree."""
        return Path(self.repo.git.rev_parse("--show-toplevel"))

    def fetch(self, remote: Optional[str] = None) -> None:
        """Fetch from ``remote`` (git's default when omitted), best effort.

        A failure is remembered so that `pull` does not fast-forward to
        remote-tracking refs that were never refreshed.
        """
        try:
            self.repo.git.fetch(*([remote] if remote else []))
        except GitCommandError as err:
            if "not a git repository" in str(err):
                raise NotAGitRepositoryError() from err
            self.fetch_failed = True
            logger.warning("git fetch failed, continuing with local state: %s", err)
        else:
            self.fetch_failed = False

    def resolve_main_branch(self, explicit_name: Optional[str] = None) -> str:
        """Branch to switch to: the explicit name, else main, else master."""
        if explicit_name:
            return explicit_name
        if self.branch_exists(MAIN_BRANCH_NAMES[0]):
            return MAIN_BRANCH_NAMES[0]
        return MAIN_BRANCH_NAMES[1]

    def branch_exists(self, branch_name: str) -> bool:
        """Check whether a local branch exists."""
        try:
            self.repo.git.rev_parse("--verify", "--quiet", f"refs/heads/{branch_name}")
            return True
        except GitCommandError:
            return False

    def remote_branch_exists(self, remote: str, branch_name: str) -> bool:
        """Ask the remote itself whether it has the branch.

        Raises:
            OperationError: If the remote cannot be reached
        """
        try:
            self.repo.git.ls_remote("--exit-code", "--heads", remote, f"refs/heads/{branch_name}")
            return True
        except GitCommandError as err:
            # --exit-code reports "no matching ref" as status 2
            if err.status == 2:
                logger.debug("%s not found on %s", branch_name, remote)
                return False
            raise OperationError(f"Failed to query {remote}: {err}") from err

    def get_current_branch_name(self) -> str:
        """Get current branch name, empty in detached HEAD state."""
        try:
            return self.repo.active_branch.name
        except TypeError:
            return ""

    def status(self) -> WorkingTreeStatus:
        """Modified, staged and untracked files in porcelain order."""
        output = self.repo.git.status("--porcelain", "--untracked-files=all")
        files = [_porcelain_path(line) for line in output.splitlines() if line.strip()]
        return WorkingTreeStatus(dirty=bool(files), files=files)

    def revert_all_changes(self) -> None:
        """Discard every uncommitted change, untracked files included."""
        try:
            self.repo.git.add("--all")
            self.repo.git.reset("--hard", "HEAD")
        except GitCommandError as err:
            raise OperationError(f"Failed to revert changes: {err}") from err

    def branch_tree(self, branch_name: str) -> str:
        """Tree hash of the branch tip."""
        return self.repo.git.rev_parse(f"refs/heads/{branch_name}^{{tree}}")

    def merge_base(self, first: str, second: str) -> Optional[str]:
        """Best common ancestor of two local branches, None for unrelated histories."""
        try:
            return self.repo.git.merge_base(f"refs/heads/{first}", f"refs/heads/{second}")
        except GitCommandError:
            return None

    def last_commit_timestamp(self, branch_name: str) -> int:
        """Committer date of the branch tip in unix seconds."""
        return int(self.repo.git.log("-1", "--format=%ct", f"refs/heads/{branch_name}"))

    def merged_branches(self, main_branch: str) -> set[str]:
        """Local branches whose tip is reachable from the main branch."""
        output = self.repo.git.branch("--merged", f"refs/heads/{main_branch}", "--format=%(refname:short)")
        return {line.strip() for line in output.splitlines() if line.strip()}

    def unpushed_commit_count(self, branch_name: str, main_branch: str) -> int:
        """Number of commits on the branch that the main branch does not have."""
        count = self.repo.git.rev_list("--count", f"refs/heads/{main_branch}..refs/heads/{branch_name}")
        return int(count.strip())

    def checkout(self, branch_name: str) -> None:
        """Switch to an existing local branch."""
        try:
            self.repo.git.checkout(branch_name, "--")
        except GitCommandError as err:
            raise OperationError(f"Failed to switch to {branch_name}: {err}") from err

    def checkout_new_tracking(self, branch_name: str, remote_ref: str) -> None:
        """Create a local branch tracking ``remote_ref`` and switch to it."""
        try:
            self.repo.git.checkout("--track", "-b", branch_name, remote_ref)
        except GitCommandError as err:
            raise OperationError(f"Failed to check out {remote_ref}: {err}") from err

    def checkout_new_from(self, branch_name: str, start_point: Optional[str] = None) -> None:
        """Create a branch at ``start_point`` (HEAD by default) and switch to it."""
        args = ["-b", branch_name]
        if start_point:
            args.append(start_point)
        try:
            self.repo.git.checkout(*args)
        except GitCommandError as err:
            raise OperationError(f"Failed to create branch {branch_name}: {err}") from err

    def pull(self) -> PullResult:
        """Update the current branch from its upstream.

        A fast-forward merge against the already fetched upstream ref is
        tried first, a full pull only when that is not possible. After a
        failed fetch the upstream ref is outdated, so the full pull runs
        directly and reports the remote's error.

        Raises:
            NoTrackingInformationError: If the current branch has no upstream
            OperationError: If the pull fails
        """
        branch = self.get_current_branch_name()
        try:
            upstream = self.repo.git.rev_parse("--abbrev-ref", "--symbolic-full-name", "@{u}")
        except GitCommandError as err:
            raise NoTrackingInformationError(branch) from err

        if not self.fetch_failed:
            try:
                output = self.repo.git.merge("--ff-only", upstream)
                return PullResult(up_to_date=_is_up_to_date(output), output=output)
            except GitCommandError as ff_err:
                logger.debug("fast-forward of %s to %s failed, pulling instead: %s", branch, upstream, ff_err)

        try:
            output = self.repo.git.pull()
        except GitCommandError as err:
            raise OperationError(f"Failed to pull {branch}: {err}") from err
        return PullResult(up_to_date=_is_up_to_date(output), output=output)

    def prune_remote(self, remote: str) -> None:
        """Drop remote-tracking refs whose branch no longer exists on the remote."""
        try:
            self.repo.git.remote("prune", remote)
        except GitCommandError as err:
            raise OperationError(f"Failed to prune {remote}: {err}") from err

    def list_local_branches(self) -> list[Branch]:
        """Local branches with tracking state and tip commit time."""
        timestamps: dict[str, int] = {}
        upstreams: dict[str, str] = {}
        refs = self.repo.git.for_each_ref(
            "--format=%(refname:short)%09%(committerdate:raw)%09%(upstream:short)",
            "refs/heads",
        )
        for line in refs.splitlines():
            name, raw_date, upstream = (line.split("\t") + ["", ""])[:3]
            if not name:
                continue
            if raw_date:
                timestamps[name] = int(raw_date.split()[0])
            upstreams[name] = upstream

        branches = []
        for line in parse_branch_listing(self.repo.git.branch("-vv", "--no-color"), upstreams):
            tracking = line.tracking
            branches.append(
                Branch(
                    name=line.name,
                    last_commit_timestamp=timestamps.get(line.name, 0),
                    tracking_remote_ref=tracking.ref if tracking else None,
                    remote_gone=bool(tracking and tracking.gone),
                )
            )
        return branches

    def delete_branch(self, branch_name: str) -> None:
        """Force-delete a local branch, the caller decides whether that is safe."""
        try:
            self.repo.git.branch("-D", branch_name)
        except GitCommandError as err:
            raise OperationError(f"Failed to delete branch {branch_name}: {err}") from err
