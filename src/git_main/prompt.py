"""Yes/no confirmations."""

from rich.console import Console

from git_main.errors import PromptAbortedError

YES = "y"
NO = "n"


class Prompter:
    """Ask the user to confirm an action, accepting only "y" or "n"."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def confirm(self, message: str) -> bool:
        """Block until the user answers exactly "y" or "n".

        Raises:
            PromptAbortedError: If input ends before an answer was given
        """
        while True:
            try:
                answer = self.console.input(f"{message} [y/n]: ", markup=False)
            except EOFError as err:
                raise PromptAbortedError("No answer received") from err
            if answer == YES:
                return True
            if answer == NO:
                return False
