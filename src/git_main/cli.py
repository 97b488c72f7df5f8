"""Command line interface for git-main."""

import os
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from typer.core import TyperCommand

from git_main.config import load_config
from git_main.errors import GitMainError, UsageError
from git_main.git import GitRepo
from git_main.logging_utils import configure_logging
from git_main.workflow import GitMain

USAGE = "Usage: git-main [branch-name]"
RAW_ARGS = "raw_args"

app = typer.Typer(
    help="Switch to the main branch, pull, prune old branches and reinstall dependencies",
    add_completion=False,
)
console = Console(soft_wrap=True)


class RawArgsCommand(TyperCommand):
    """Keep the command line as typed, click drops a ``--`` separator while parsing."""

    def parse_args(self, ctx: typer.Context, args: List[str]) -> Any:
        ctx.meta[RAW_ARGS] = list(args)
        return super().parse_args(ctx, args)


def parse_branch_argument(args: Optional[List[str]]) -> Optional[str]:
    """Accept zero or one positional argument and no flags.

    Raises:
        UsageError: For options (``--`` included) or more than one argument
    """
    tokens = list(args or [])
    for token in tokens:
        if token.startswith("-"):
            raise UsageError(f"Unknown option '{token}'\n{USAGE}")
    if len(tokens) > 1:
        raise UsageError(f"Expected at most one branch name\n{USAGE}")
    return tokens[0] if tokens else None


@app.command(
    cls=RawArgsCommand,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
    add_help_option=False,
)
def main(
    ctx: typer.Context,
    args: Optional[List[str]] = typer.Argument(None, help="Branch to switch to instead of main/master"),
) -> None:
    """Switch to main (or BRANCH), clean up branches and sync dependencies."""
    try:
        branch_name = parse_branch_argument(ctx.meta.get(RAW_ARGS, args))
        config = load_config(os.environ, path=Path("."))
        configure_logging(config.debug)
        GitMain(GitRepo(config), console, config=config).run(branch_name)
    except GitMainError as err:
        console.print(f"[red]❌ {escape(str(err))}[/red]")
        raise typer.Exit(code=1) from err
    except KeyboardInterrupt as err:
        console.print("\n[yellow]Aborted[/yellow] 🛑")
        raise typer.Exit(code=130) from err
    except Exception as err:
        console.print(f"[red]Error:[/red] {escape(str(err))}")
        raise typer.Exit(code=1) from err


if __name__ == "__main__":
    app()
