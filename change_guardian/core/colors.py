"""
Terminal colors for the Change Guardian command line tools.

Plain ANSI escape codes, applied only when stdout is a TTY so that piped
output and CI logs stay clean.
"""

import re
import sys
from typing import List


class Colors:
    """ANSI color codes for terminal output."""
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'

    BOLD = '\033[1m'
    RESET = '\033[0m'


_ANSI_RE = re.compile(r'\033\[[0-9;]*m')


def colorize(text: str, color: str) -> str:
    """
    Add color to text if stdout is a TTY.

    Args:
        text: Text to colorize
        color: ANSI color code from Colors class

    Returns:
        Colored text if TTY, plain text otherwise
    """
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def success(text: str) -> str:
    """Format text as success (green)."""
    return colorize(text, Colors.GREEN)


def error(text: str) -> str:
    """Format text as error (red)."""
    return colorize(text, Colors.RED)


def warning(text: str) -> str:
    """Format text as warning (yellow)."""
    return colorize(text, Colors.YELLOW)


def info(text: str) -> str:
    """Format text as info (blue)."""
    return colorize(text, Colors.BLUE)


def bold(text: str) -> str:
    return colorize(text, Colors.BOLD)


def print_box(lines: List[str], title: str = "", width: int = 60):
    """
    Print lines inside a rounded border, e.g. the audit verdict.

    Lines longer than the box are cut with "...".
    """
    horizontal = '─'
    vertical = colorize('│', Colors.BOLD)

    if title:
        title_text = f" {title} "
        left = (width - len(title_text) - 2) // 2
        right = width - len(title_text) - left - 2
        top_line = '╭' + horizontal * left + title_text + horizontal * right + '╮'
    else:
        top_line = '╭' + horizontal * (width - 2) + '╮'

    print(colorize(top_line, Colors.BOLD))
    print(vertical + ' ' * (width - 2) + vertical)

    max_content_width = width - 6
    for line in lines:
        visible = _ANSI_RE.sub('', line)
        if len(visible) > max_content_width:
            line = visible[:max_content_width - 3] + "..."
            visible = line
        padding = max(0, width - len(visible) - 4)
        print(vertical + f"  {line}" + ' ' * padding + vertical)

    print(vertical + ' ' * (width - 2) + vertical)
    print(colorize('╰' + horizontal * (width - 2) + '╯', Colors.BOLD))
