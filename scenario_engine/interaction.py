"""
User Interaction Channel

The only blocking suspension points of the pipeline:
- clarify: ask for a reference when none was given
- choose: present candidates and wait for a selection (multi-select allowed)
- confirm: yes/no question (near-duplicate scenario names)

There is no timeout at the engine level; the caller may abandon the
invocation while it waits, and nothing has been written at that point.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape

from scenario_engine.console import console as default_console
from scenario_engine.error_handling import InputAmbiguityError

logger = logging.getLogger(__name__)


class InteractionChannel(ABC):
    """Interface the pipeline uses to ask the user questions."""

    @abstractmethod
    def clarify(self, question: str) -> str:
        """Ask a free-text question; returns the (possibly empty) answer."""

    @abstractmethod
    def choose(self, question: str, options: List[str], multi_select: bool = False) -> List[str]:
        """
        Present options and block until a selection is made.

        Returns:
            Selected options (a subset of `options`, in option order)
        """

    @abstractmethod
    def confirm(self, question: str, default: bool = False) -> bool:
        """Ask a yes/no question."""

    @property
    def interactive(self) -> bool:
        return True


class ConsoleChannel(InteractionChannel):
    """
    Terminal channel (BLOCKING).

    Example:
        channel = ConsoleChannel()
        picked = channel.choose("Which feature?", ["Order export", "Report export"], multi_select=True)
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        input_func: Optional[Callable[[str], str]] = None,
        max_retries: int = 5
    ):
        """
        Initialize the console channel.

        Args:
            console: Rich console for prompts (default: shared themed console)
            input_func: Line reader (default: console.input)
            max_retries: Invalid answers tolerated before giving up
        """
        self.console = console or default_console
        self.input_func = input_func or self.console.input
        self.max_retries = max_retries

    def _read(self, prompt: str) -> str:
        try:
            return self.input_func(prompt).strip()
        except (EOFError, KeyboardInterrupt) as e:
            raise InputAmbiguityError(
                "Input cancelled before a selection was made",
                original_error=e,
            ) from e

    def _get_validated_input(self, prompt: str, parse: Callable[[str], Optional[List[int]]]) -> List[int]:
        """
        Read input until it parses, up to max_retries attempts.

        Raises:
            InputAmbiguityError: If max retries exceeded
        """
        attempts = 0
        while attempts < self.max_retries:
            answer = self._read(prompt)
            selection = parse(answer) if answer else None
            if selection:
                return selection
            attempts += 1
            remaining = self.max_retries - attempts
            if remaining == 1:
                self.console.print(f"Invalid choice: '{escape(answer)}'. This is your last attempt.", style="warning")
            elif remaining > 1:
                self.console.print(
                    f"Invalid choice: '{escape(answer)}'. Please try again ({remaining} attempts remaining)",
                    style="warning",
                )
        raise InputAmbiguityError(
            f"No selection after {self.max_retries} attempts",
            context={"prompt": prompt},
        )

    def clarify(self, question: str) -> str:
        self.console.print(f"\n{escape(question)}", style="bold_accent3")
        return self._read("> ")

    def choose(self, question: str, options: List[str], multi_select: bool = False) -> List[str]:
        self.console.print(f"\n{escape(question)}", style="bold_accent3")
        for number, option in enumerate(options, 1):
            self.console.print(f"  {number}. {escape(option)}", style="primary")
        hint = "numbers separated by commas, or 'all'" if multi_select else "a number"
        self.console.print(f"Enter {hint}.", style="secondary")

        def parse(answer: str) -> Optional[List[int]]:
            if multi_select and answer.lower() == "all":
                return list(range(len(options)))
            picked = []
            for part in answer.replace(" ", "").split(","):
                if not part.isdigit() or not 1 <= int(part) <= len(options):
                    return None
                if int(part) - 1 not in picked:
                    picked.append(int(part) - 1)
            if not multi_select and len(picked) != 1:
                return None
            return sorted(picked)

        selection = self._get_validated_input("Selection: ", parse)
        chosen = [options[i] for i in selection]
        logger.debug("Selected %s", chosen)
        return chosen

    def confirm(self, question: str, default: bool = False) -> bool:
        suffix = "(Y/n)" if default else "(y/N)"
        answers = {"y": True, "yes": True, "n": False, "no": False}
        attempts = 0
        while attempts < self.max_retries:
            answer = self._read(f"{escape(question)} {suffix}: ").lower()
            if not answer:
                return default
            if answer in answers:
                return answers[answer]
            attempts += 1
            self.console.print(f"Invalid choice: '{escape(answer)}'. Answer yes or no.", style="warning")
        return default


class NonInteractiveChannel(InteractionChannel):
    """
    Channel for unattended runs: every question that needs a human fails.

    Confirmations take their default answer.
    """

    def clarify(self, question: str) -> str:
        raise InputAmbiguityError(
            "Clarification required but running non-interactively",
            context={"question": question},
        )

    def choose(self, question: str, options: List[str], multi_select: bool = False) -> List[str]:
        raise InputAmbiguityError(
            f"Reference is ambiguous ({len(options)} candidates) and running non-interactively",
            context={"candidates": "; ".join(options)},
        )

    def confirm(self, question: str, default: bool = False) -> bool:
        logger.info("Non-interactive: '%s' -> %s", question, "yes" if default else "no")
        return default

    @property
    def interactive(self) -> bool:
        return False
