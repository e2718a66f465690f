"""Tests for the terminal and unattended interaction channels."""

import io

import pytest
from rich.console import Console

from scenario_engine.console import THEME
from scenario_engine.error_handling import InputAmbiguityError
from scenario_engine.interaction import ConsoleChannel, NonInteractiveChannel

OPTIONS = ["Order Export [orders]", "Report Export [reporting]", "Invoices [billing]"]


def scripted_input(*answers):
    """Line reader returning answers in order, then end of input."""
    remaining = list(answers)
    prompts = []

    def read(prompt):
        prompts.append(prompt)
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    read.prompts = prompts
    return read


def channel_with(*answers, max_retries=5):
    output = io.StringIO()
    console = Console(file=output, theme=THEME, width=120)
    channel = ConsoleChannel(console=console, input_func=scripted_input(*answers), max_retries=max_retries)
    return channel, output


class TestChoose:
    """Tests for option selection."""

    def test_single_selection(self):
        """Test a valid number selects one option and options are listed."""
        channel, output = channel_with("2")

        assert channel.choose("Which feature?", OPTIONS) == ["Report Export [reporting]"]
        assert "1. Order Export [orders]" in output.getvalue()

    def test_multi_selection_in_option_order(self):
        """Test comma-separated numbers return options in listing order."""
        channel, _ = channel_with("3, 1")

        assert channel.choose("Which?", OPTIONS, multi_select=True) == [OPTIONS[0], OPTIONS[2]]

    def test_all_selects_everything(self):
        """Test 'all' selects every option in multi-select mode."""
        channel, _ = channel_with("ALL")

        assert channel.choose("Which?", OPTIONS, multi_select=True) == OPTIONS

    def test_invalid_answers_retried(self):
        """Test out-of-range and malformed answers are asked again."""
        channel, output = channel_with("7", "one", "1,2", "1")

        assert channel.choose("Which?", OPTIONS) == [OPTIONS[0]]
        assert output.getvalue().count("Invalid choice") == 3

    def test_retries_exhausted(self):
        """Test too many invalid answers raise an ambiguity error."""
        channel, _ = channel_with("9", "9", max_retries=2)

        with pytest.raises(InputAmbiguityError):
            channel.choose("Which?", OPTIONS)

    def test_end_of_input(self):
        """Test a closed input stream raises instead of blocking."""
        channel, _ = channel_with()

        with pytest.raises(InputAmbiguityError) as excinfo:
            channel.choose("Which?", OPTIONS)

        assert isinstance(excinfo.value.original_error, EOFError)


class TestConfirmAndClarify:
    """Tests for yes/no and free-text questions."""

    @pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("no", False)])
    def test_confirm_answers(self, answer, expected):
        """Test yes and no answers in any case."""
        channel, _ = channel_with(answer)

        assert channel.confirm("Create anyway?") is expected

    def test_confirm_empty_answer_takes_default(self):
        """Test an empty answer returns the default."""
        channel, _ = channel_with("", "")

        assert channel.confirm("Create anyway?") is False
        assert channel.confirm("Create anyway?", default=True) is True

    def test_confirm_prompt_shows_default(self):
        """Test the prompt marks the default answer."""
        read = scripted_input("y")
        channel = ConsoleChannel(console=Console(file=io.StringIO(), theme=THEME), input_func=read)

        channel.confirm("Create anyway?")

        assert read.prompts == ["Create anyway? (y/N): "]

    def test_clarify_returns_stripped_answer(self):
        """Test the clarification answer is stripped."""
        channel, output = channel_with("  password reset  ")

        assert channel.clarify("What should scenarios be generated for?") == "password reset"
        assert "What should scenarios be generated for?" in output.getvalue()


class TestNonInteractiveChannel:
    """Tests for unattended runs."""

    def test_questions_needing_a_human_fail(self):
        """Test clarify and choose raise instead of blocking."""
        channel = NonInteractiveChannel()

        with pytest.raises(InputAmbiguityError):
            channel.clarify("What?")
        with pytest.raises(InputAmbiguityError) as excinfo:
            channel.choose("Which?", OPTIONS[:2])

        assert "2 candidates" in str(excinfo.value)
        assert not channel.interactive

    def test_confirm_takes_default(self):
        """Test confirmations answer with their default."""
        channel = NonInteractiveChannel()

        assert channel.confirm("Create anyway?") is False
        assert channel.confirm("Create anyway?", default=True) is True
