"""Error types raised by git-main."""


class GitMainError(Exception):
    """Base class for every anticipated git-main failure."""


class UsageError(GitMainError):
    """Bad command line invocation."""


class ConfigError(UsageError):
    """Invalid configuration value."""


class RepositoryEnvironmentError(GitMainError):
    """The working directory cannot be handled at all."""


class NoRemoteError(RepositoryEnvironmentError):
    """The repository has no configured remote."""

    def __init__(self) -> None:
        super().__init__("no remote repository")


class NotAGitRepositoryError(RepositoryEnvironmentError):
    """The working directory is not inside a git repository."""

    def __init__(self) -> None:
        super().__init__("not a git repository")


class UserDeclinedError(GitMainError):
    """The user answered "n" to a required confirmation."""


class PromptAbortedError(GitMainError):
    """Input ended before a confirmation was answered."""


class DirtyWorkingTreeError(GitMainError):
    """Uncommitted changes on a branch other than the target branch."""

    def __init__(self) -> None:
        super().__init__("branch not clean")


class OperationError(GitMainError):
    """An underlying command failed unexpectedly."""


class NoTrackingInformationError(OperationError):
    """The current branch has no upstream to pull from."""

    def __init__(self, branch: str) -> None:
        super().__init__(f"There is no tracking information for branch '{branch}'")
        self.branch = branch


class BranchListingError(OperationError):
    """A line of the verbose branch listing could not be parsed."""


class DependencyInstallError(OperationError):
    """The package manager install command failed."""
