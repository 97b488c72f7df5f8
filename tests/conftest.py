"""Test configuration and fixtures."""

import io
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest
from git import Actor, Repo
from rich.console import Console

from git_main.config import GitMainConfig
from git_main.git import GitRepo
from git_main.prompt import Prompter

AUTHOR = Actor("Test User", "test@example.com")


def git_date(moment: datetime) -> str:
    """Format a datetime in git's internal "<unix> <offset>" date format."""
    return f"{int(moment.timestamp())} +0000"


def commit_file(
    repo: Repo,
    name: str,
    content: str,
    message: Optional[str] = None,
    date: Optional[datetime] = None,
) -> None:
    """Write a file in the work tree and commit it on the current branch."""
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    kwargs = {}
    if date is not None:
        kwargs = {"author_date": git_date(date), "commit_date": git_date(date)}
    repo.index.commit(message or f"Add {name}", author=AUTHOR, committer=AUTHOR, **kwargs)


def configure_user(repo: Repo) -> None:
    writer = repo.config_writer()
    writer.set_value("user", "name", AUTHOR.name)
    writer.set_value("user", "email", AUTHOR.email)
    writer.release()


@pytest.fixture
def test_env(tmp_path: Path) -> Generator[tuple[Path, Path], None, None]:
    """Create a local repository on main that tracks a bare remote.

    Returns:
        Tuple of (local_repo_path, remote_repo_path)
    """
    remote_path = tmp_path / "remote"
    local_path = tmp_path / "local"
    remote_path.mkdir()
    local_path.mkdir()

    remote_repo = Repo.init(remote_path, bare=True)
    # Without init.defaultBranch the remote HEAD is master, which git refuses to delete by push
    remote_repo.git.symbolic_ref("HEAD", "refs/heads/main")
    local_repo = Repo.init(local_path)
    configure_user(local_repo)

    commit_file(local_repo, "README.md", "# Test Repository", message="Initial commit")
    # Whatever the default branch name is, call it main
    local_repo.git.branch("-M", "main")

    origin = local_repo.create_remote("origin", url=str(remote_path))
    origin.push("main")
    local_repo.heads.main.set_tracking_branch(origin.refs.main)

    yield local_path, remote_path


@pytest.fixture
def local_repo(test_env: tuple[Path, Path]) -> Repo:
    """GitPython handle on the local repository."""
    local_path, _ = test_env
    return Repo(local_path)


@pytest.fixture
def make_branch(local_repo: Repo) -> Callable[..., None]:
    """Factory creating a branch off main with one commit, then returning to main."""

    def create(
        name: str,
        age: Optional[timedelta] = None,
        push: bool = False,
        gone: bool = False,
    ) -> None:
        local_repo.heads.main.checkout()
        branch = local_repo.create_head(name)
        branch.checkout()
        date = datetime.now(timezone.utc) - age if age is not None else None
        commit_file(local_repo, f"{name}.txt", f"{name} content", message=f"Commit for {name}", date=date)

        if push or gone:
            origin = local_repo.remote("origin")
            origin.push(name)
            branch.set_tracking_branch(origin.refs[name])
        if gone:
            # Deleting through push also drops the local remote-tracking ref
            local_repo.remote("origin").push(f":{name}")
        local_repo.heads.main.checkout()

    return create


@pytest.fixture
def remote_clone(test_env: tuple[Path, Path], tmp_path: Path) -> Repo:
    """A second clone used to push changes the local repository has not seen."""
    _, remote_path = test_env
    clone = Repo.clone_from(str(remote_path), str(tmp_path / "remote_clone"))
    configure_user(clone)
    clone.git.checkout("main")
    return clone


@pytest.fixture
def git_repo(test_env: tuple[Path, Path]) -> GitRepo:
    """GitRepo opened on the local repository."""
    local_path, _ = test_env
    return GitRepo(GitMainConfig(path=local_path))


class ScriptedPrompter(Prompter):
    """Answers confirmations from a list and records the questions."""

    def __init__(self, console: Console, answers: list[bool]) -> None:
        super().__init__(console)
        self.answers = list(answers)
        self.questions: list[str] = []

    def confirm(self, message: str) -> bool:
        self.questions.append(message)
        if not self.answers:
            raise AssertionError(f"Unexpected confirmation: {message}")
        return self.answers.pop(0)


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    """Console writing plain text into ``output``."""
    return Console(file=output, soft_wrap=True, color_system=None, width=200)


@pytest.fixture
def commit() -> Callable[..., None]:
    """The ``commit_file`` helper."""
    return commit_file


@pytest.fixture
def make_prompter(console: Console) -> Callable[[list[bool]], ScriptedPrompter]:
    """Factory for prompters answering from a list."""

    def create(answers: list[bool]) -> ScriptedPrompter:
        return ScriptedPrompter(console, answers)

    return create
