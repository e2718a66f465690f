"""
Themed Rich console shared by every user-facing output path.

Style names (primary, accent1, bold_success, ...) are resolved through the
theme so callers never hard-code colors.
"""

from rich.console import Console
from rich.theme import Theme

# Brand colors - hex values for theme-independent rendering
COLORS = {
    "primary": "#D9EAFC",      # Light blue - primary text
    "secondary": "#758B9B",    # Muted blue-gray
    "tertiary": "#94A5CC",     # Medium blue
    "accent1": "#71E4D1",      # Cyan - highlights
    "accent2": "#67CFEE",      # Light cyan
    "accent3": "#BB93DD",      # Purple - interactive prompts
    "success": "#71E4D1",
    "warning": "#FFA500",
    "error": "#FF6B6B",
    "info": "#67CFEE",
}

THEME = Theme({
    **COLORS,
    **{f"bold_{name}": f"bold {color}" for name, color in COLORS.items()},
})

console = Console(theme=THEME, highlight=False)
err_console = Console(theme=THEME, stderr=True, highlight=False)


def print_success(message: str) -> None:
    console.print(message, style="success", markup=False)


def print_warning(message: str) -> None:
    err_console.print(message, style="warning", markup=False)


def print_error(message: str) -> None:
    err_console.print(message, style="bold_error", markup=False)


def print_info(message: str) -> None:
    console.print(message, style="info", markup=False)
