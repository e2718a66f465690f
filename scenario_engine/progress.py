"""
Progress lines for the generate pipeline.

Usage:
    from scenario_engine.progress import print_step_header, print_success

    print_step_header(1, "Resolve Reference", total_steps=7)
    print_success("Reference resolved")
"""
from scenario_engine import console as _console


def print_step_header(step_number: int, step_name: str, total_steps: int = 0):
    """
    Print a rule naming the step about to run.

    Args:
        step_number: 1-based position of the step
        step_name: Name of the step
        total_steps: Number of steps in the pipeline (0 to hide)
    """
    position = f"{step_number}/{total_steps}" if total_steps > 0 else str(step_number)
    _console.console.rule(f"▶ Step {position}: {step_name}", style="accent2", align="left")


def print_success(message: str):
    _console.print_success(f"✔ {message}")


def print_warning(message: str):
    _console.print_warning(f"⚠ {message}")


def print_error(message: str):
    _console.print_error(f"✖ {message}")


def print_info(message: str):
    _console.print_info(f"ℹ {message}")


def print_status(message: str):
    """Neutral, indented line (dry-run listings)."""
    _console.console.print(f"  {message}", style="primary", markup=False)
