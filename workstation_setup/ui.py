"""Nord-themed console output: banner, section headers and the status report."""

import shutil
from typing import Dict, Optional

import pyfiglet
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from workstation_setup import APP_SUBTITLE, VERSION


# ----------------------------------------------------------------
# Nord Color Theme & Console Setup
# ----------------------------------------------------------------
class NordColors:
    """Nord color palette for consistent styling."""

    POLAR_NIGHT_1: str = "#2E3440"
    POLAR_NIGHT_4: str = "#4C566A"
    SNOW_STORM_1: str = "#D8DEE9"
    SNOW_STORM_2: str = "#E5E9F0"
    FROST_1: str = "#8FBCBB"
    FROST_2: str = "#88C0D0"
    FROST_3: str = "#81A1C1"
    FROST_4: str = "#5E81AC"
    RED: str = "#BF616A"
    ORANGE: str = "#D08770"
    YELLOW: str = "#EBCB8B"
    GREEN: str = "#A3BE8C"


nord_theme = Theme(
    {
        "info": f"{NordColors.FROST_2}",
        "warning": f"{NordColors.YELLOW}",
        "error": f"{NordColors.RED}",
        "success": f"{NordColors.GREEN}",
        "debug": f"{NordColors.POLAR_NIGHT_4}",
        "header": f"bold {NordColors.FROST_1}",
    }
)

# Informational output goes to stdout, warnings and errors to stderr
console = Console(theme=nord_theme, highlight=False)
err_console = Console(theme=nord_theme, highlight=False, stderr=True)

STATUS_STYLES: Dict[str, str] = {
    "success": NordColors.GREEN,
    "failed": NordColors.RED,
    "in_progress": NordColors.YELLOW,
    "skipped": NordColors.FROST_4,
    "pending": NordColors.FROST_3,
}


# ----------------------------------------------------------------
# UI Helper Functions
# ----------------------------------------------------------------
def create_header(title: str) -> Panel:
    """
    Generate an ASCII art header with gradient styling using Pyfiglet.

    Args:
        title: The title text to display in the ASCII art

    Returns:
        A Rich Panel containing the styled ASCII art header
    """
    term_width = shutil.get_terminal_size().columns
    adjusted_width = min(term_width - 4, 80)

    fonts = ["slant", "small", "standard", "digital", "big"]
    ascii_art = ""

    for font in fonts:
        try:
            fig = pyfiglet.Figlet(font=font, width=adjusted_width)
            ascii_art = fig.renderText(title)
            if ascii_art.strip():
                break
        except pyfiglet.FigletError:
            continue

    if not ascii_art.strip():
        ascii_art = title

    ascii_lines = [line for line in ascii_art.splitlines() if line.strip()]
    colors = [
        NordColors.FROST_1,
        NordColors.FROST_2,
        NordColors.FROST_3,
        NordColors.FROST_4,
    ]

    styled_text = Text()
    for i, line in enumerate(ascii_lines):
        styled_text.append(line, style=Style(color=colors[i % len(colors)], bold=True))
        styled_text.append("\n")

    border_text = Text(
        "━" * max(adjusted_width - 6, 10), style=Style(color=NordColors.FROST_3)
    )

    content = Text()
    content.append(border_text)
    content.append("\n")
    content.append(styled_text)
    content.append(border_text)

    return Panel(
        content,
        border_style=Style(color=NordColors.FROST_1),
        padding=(1, 2),
        title=f"v{VERSION}",
        title_align="right",
        subtitle=APP_SUBTITLE,
        subtitle_align="center",
    )


def print_section(title: str) -> None:
    """Display a section header with consistent styling."""
    console.print()
    console.print(f"[bold {NordColors.FROST_3}]{title}[/]")
    console.print(f"[{NordColors.FROST_3}]{'─' * len(title)}[/]")


def print_error(message: str) -> None:
    err_console.print(f"[{NordColors.RED}]✗ {message}[/{NordColors.RED}]")


def print_status_report(
    statuses: Dict[str, Dict[str, str]], title: Optional[str] = None
) -> None:
    """Display a summary status report of all phases."""
    table = Table(
        title=title or "Workstation Setup Status Report",
        title_style=f"bold {NordColors.FROST_1}",
        border_style=f"{NordColors.FROST_3}",
        box=box.ROUNDED,
        show_lines=True,
    )

    table.add_column("Phase", style=f"bold {NordColors.FROST_2}")
    table.add_column("Status", style="bold")
    table.add_column("Message")

    for name, data in statuses.items():
        status_style = STATUS_STYLES.get(data["status"].lower(), NordColors.FROST_2)
        table.add_row(
            name,
            f"[{status_style}]{data['status'].upper()}[/{status_style}]",
            data.get("message", ""),
        )

    console.print(Panel(table, border_style=f"{NordColors.FROST_1}"))
