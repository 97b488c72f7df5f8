"""Branch records and the `git branch -vv` listing grammar.

A verbose listing line is tokenized into

    <marker> <name> <hash> [ "(" worktree path ")" ] [ "[" tracking "]" ] <subject>

where ``marker`` is ``*`` for the current branch, ``+`` for a branch checked
out in another worktree, or blank. The tracking annotation has its own
grammar:

    tracking := ref
              | ref ": gone"
              | ref ": " state ("," " " state)*
    state    := ("ahead" | "behind") " " digits

A bracketed text that does not follow this grammar belongs to the commit
subject. "[WIP] fix" is grammatically a tracking annotation, so callers that
know the configured upstreams pass them in to settle it.
"""

import re
from dataclasses import dataclass
from typing import Mapping, Optional

from git_main.errors import BranchListingError

CURRENT_MARKER = "*"
WORKTREE_MARKER = "+"
GONE = "gone"

_HASH = re.compile(r"^[0-9a-f]{4,64}$")
_STATE = re.compile(r"^(ahead|behind) ([0-9]+)$")


@dataclass(frozen=True)
class TrackingAnnotation:
    """Upstream information shown between brackets."""

    ref: str
    gone: bool = False
    ahead: int = 0
    behind: int = 0


@dataclass(frozen=True)
class BranchLine:
    """One tokenized line of the verbose branch listing."""

    marker: str
    name: str
    commit: str
    tracking: Optional[TrackingAnnotation]
    subject: str
    worktree: Optional[str] = None

    @property
    def is_current(self) -> bool:
        return self.marker == CURRENT_MARKER


@dataclass(frozen=True)
class Branch:
    """A local branch as seen at the start of a run."""

    name: str
    last_commit_timestamp: int
    tracking_remote_ref: Optional[str] = None
    remote_gone: bool = False


def parse_tracking(text: str) -> Optional[TrackingAnnotation]:
    """Parse the text between brackets, None when it is not a tracking annotation."""
    ref, separator, state = text.partition(": ")
    if not ref or any(char.isspace() for char in ref) or ":" in ref:
        return None
    if not separator:
        return TrackingAnnotation(ref=ref)
    if state == GONE:
        return TrackingAnnotation(ref=ref, gone=True)

    counts: dict[str, int] = {}
    for part in state.split(", "):
        match = _STATE.match(part)
        if not match or match.group(1) in counts:
            return None
        counts[match.group(1)] = int(match.group(2))
    if list(counts) == ["behind", "ahead"]:
        return None
    return TrackingAnnotation(ref=ref, ahead=counts.get("ahead", 0), behind=counts.get("behind", 0))


def _split_token(text: str) -> tuple[str, str]:
    parts = text.split(None, 1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


def parse_branch_line(line: str, upstreams: Optional[Mapping[str, str]] = None) -> Optional[BranchLine]:
    """Tokenize one line of `git branch -vv`.

    Args:
        line: Line of the listing
        upstreams: Configured upstream per branch name, empty when none; when
            given, a bracketed ref must match it to count as tracking

    Returns:
        The parsed line, or None for blank lines and detached HEAD entries

    Raises:
        BranchListingError: If the line has no branch name or commit hash
    """
    text = line.strip()
    if not text:
        return None

    marker = ""
    if text[0] in (CURRENT_MARKER, WORKTREE_MARKER) and (len(text) == 1 or text[1].isspace()):
        marker = text[0]
        text = text[1:].lstrip()

    # "(HEAD detached at 1a2b3c4)" and "(no branch, rebasing x)"
    if text.startswith("("):
        return None

    name, rest = _split_token(text)
    commit, rest = _split_token(rest)
    if not name or not _HASH.match(commit):
        raise BranchListingError(f"Unexpected branch listing line: {line!r}")

    worktree = None
    if rest.startswith("("):
        end = rest.find(")")
        if end != -1:
            worktree = rest[1:end]
            rest = rest[end + 1 :].lstrip()

    tracking = None
    if rest.startswith("["):
        end = rest.find("]")
        if end != -1:
            tracking = parse_tracking(rest[1:end])
            if tracking is not None and upstreams is not None and upstreams.get(name) != tracking.ref:
                tracking = None
            if tracking is not None:
                rest = rest[end + 1 :].lstrip()

    return BranchLine(
        marker=marker,
        name=name,
        commit=commit,
        tracking=tracking,
        subject=rest,
        worktree=worktree,
    )


def parse_branch_listing(output: str, upstreams: Optional[Mapping[str, str]] = None) -> list[BranchLine]:
    """Tokenize a whole `git branch -vv` listing, keeping git's order."""
    parsed = (parse_branch_line(line, upstreams) for line in output.splitlines())
    return [line for line in parsed if line is not None]
