"""Package manager detection and reinstall."""

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from git_main.errors import DependencyInstallError

logger = logging.getLogger(__name__)


class PackageManager(Enum):
    """Supported package managers, in detection order."""

    YARN = "yarn"
    PNPM = "pnpm"
    NPM = "npm"

    @property
    def lockfile(self) -> str:
        return LOCKFILES[self]

    @property
    def install_command(self) -> list[str]:
        return list(INSTALL_COMMANDS[self])


LOCKFILES = {
    PackageManager.YARN: "yarn.lock",
    PackageManager.PNPM: "pnpm-lock.yaml",
    PackageManager.NPM: "package-lock.json",
}

INSTALL_COMMANDS = {
    PackageManager.YARN: ("yarn", "--immutable"),
    PackageManager.PNPM: ("pnpm", "install", "--frozen-lockfile"),
    PackageManager.NPM: ("npm", "ci"),
}


@dataclass(frozen=True)
class LockfileSnapshot:
    """Raw lockfile bytes at one point in time, empty when the file is absent."""

    package_manager: PackageManager
    content: bytes

    def differs_from(self, other: "LockfileSnapshot") -> bool:
        return self.content != other.content


def detect(root: Path) -> Optional[PackageManager]:
    """First package manager whose lockfile exists, yarn before pnpm before npm."""
    for manager in PackageManager:
        if (root / manager.lockfile).is_file():
            return manager
    return None


def snapshot(root: Path, manager: PackageManager) -> LockfileSnapshot:
    """Read the manager's lockfile."""
    try:
        content = (root / manager.lockfile).read_bytes()
    except FileNotFoundError:
        content = b""
    return LockfileSnapshot(package_manager=manager, content=content)


Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]


class DependencyManager:
    """Reinstall dependencies when the lockfile changed across a pull."""

    def __init__(self, root: Path, runner: Optional[Runner] = None) -> None:
        self.root = root
        self._runner = runner or subprocess.run

    def detect(self) -> Optional[PackageManager]:
        return detect(self.root)

    def snapshot(self, manager: Optional[PackageManager] = None) -> Optional[LockfileSnapshot]:
        """Snapshot the lockfile of ``manager`` or of the detected package manager."""
        manager = manager or self.detect()
        if manager is None:
            return None
        return snapshot(self.root, manager)

    def install(self, manager: PackageManager) -> None:
        """Run the manager's reproducible install, output goes straight to the terminal.

        Raises:
            DependencyInstallError: If the command is missing or exits nonzero
        """
        command = manager.install_command
        logger.debug("running %s in %s", " ".join(command), self.root)
        try:
            self._runner(command, cwd=str(self.root), check=True)
        except FileNotFoundError as err:
            raise DependencyInstallError(f"{manager.value} was not found in PATH") from err
        except subprocess.CalledProcessError as err:
            raise DependencyInstallError(
                f"{' '.join(command)} failed with exit code {err.returncode}"
            ) from err
