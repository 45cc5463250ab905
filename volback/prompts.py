"""
Interactive prompts for the volback CLI.

Selection input accepts comma separated numbers from the printed list
(e.g. "1,3,5"), "A" for all, "Q" to quit and, where allowed, "N" for none.
"""

from typing import List, Optional, Sequence

import click


class SelectionError(ValueError):
    """Raised when selection input cannot be interpreted."""
    pass


def parse_selection(choice: str, options: Sequence[str], allow_none: bool = False) -> Optional[List[str]]:
    """
    Interpret a multi-selection answer.

    Args:
        choice: Raw user input
        options: Items in the order they were listed
        allow_none: Accept "N" as an explicit empty selection

    Returns:
        Selected items in list order without duplicates, [] for "N",
        or None for "Q"

    Raises:
        SelectionError: If the input is invalid or selects nothing
    """
    answer = choice.strip().lower()

    if answer == 'q':
        return None
    if answer == 'a':
        return list(options)
    if answer == 'n' and allow_none:
        return []

    selected = []
    for part in answer.split(','):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or not 1 <= int(part) <= len(options):
            raise SelectionError(f"Invalid selection: '{part}'")
        item = options[int(part) - 1]
        if item not in selected:
            selected.append(item)

    if not selected:
        raise SelectionError("No volumes selected")
    return selected


def select_volumes(options: Sequence[str], prompt: str, labels: Optional[Sequence[str]] = None,
                   allow_none: bool = False) -> Optional[List[str]]:
    """
    Let the user pick several volumes from a numbered list.

    Returns:
        Selected volumes, [] for "N" (when allowed), or None if the user quit
    """
    for index, option in enumerate(options, start=1):
        label = labels[index - 1] if labels else option
        click.echo(f"  {index}) {label}")
    click.echo("  A) All")
    if allow_none:
        click.echo("  N) None")
    click.echo("  Q) Quit")

    keys = 'A, N, Q' if allow_none else 'A, Q'
    while True:
        choice = click.prompt(f"{prompt} (e.g., 1,3,5 or {keys})", default='', show_default=False)
        try:
            return parse_selection(choice, options, allow_none=allow_none)
        except SelectionError as e:
            click.echo(f"{e}. Please enter numbers from the list, or {keys}.")


def choose_one(options: Sequence[str], prompt: str, labels: Optional[Sequence[str]] = None) -> Optional[str]:
    """
    Let the user pick one item from a numbered list.

    Returns:
        The chosen item, or None if the user quit
    """
    for index, option in enumerate(options, start=1):
        label = labels[index - 1] if labels else option
        click.echo(f"  {index}) {label}")
    click.echo("  Q) Quit")

    while True:
        choice = click.prompt(prompt, default='', show_default=False).strip().lower()
        if choice == 'q':
            return None
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            return options[int(choice) - 1]
        click.echo("Invalid choice. Please select a number from the list, or Q.")


def prompt_retention(prompt: str, default: int) -> int:
    """Ask for a positive integer, re-asking until one is given."""
    return click.prompt(prompt, default=default, type=click.IntRange(min=1))


def confirm(prompt: str) -> bool:
    """Yes/no question defaulting to no."""
    return click.confirm(prompt, default=False)
