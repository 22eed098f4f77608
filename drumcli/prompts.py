"""Interactive terminal prompts (stdin/stdout)."""
from __future__ import annotations

from typing import Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def _ask(message: str, default: Optional[str] = None) -> str:
    suffix = f" [{default}]" if default not in (None, "") else ""
    raw = input(f"{message}{suffix} ").strip()
    if not raw and default is not None:
        return default
    return raw


def ask_text(message: str, *, required: bool = True, default: Optional[str] = None) -> Optional[str]:
    while True:
        value = _ask(message, default)
        if value:
            return value
        if not required:
            return None
        print("A value is required")


def ask_int(message: str, *, default: Optional[int] = None, minimum: int = 1) -> int:
    while True:
        raw = _ask(message, None if default is None else str(default))
        try:
            value = int(raw)
        except ValueError:
            print("Please enter a whole number")
            continue
        if value < minimum:
            print(f"Must be at least {minimum}")
            continue
        return value


def ask_choice(message: str, choices: Sequence[str], *, default: Optional[str] = None) -> str:
    options = "/".join(choices)
    while True:
        value = _ask(f"{message} ({options})", default)
        if value in choices:
            return value
        print(f"Choose one of: {', '.join(choices)}")


def confirm(message: str, *, default: bool = False) -> bool:
    hint = "Y/n" if default else "y/N"
    raw = input(f"{message} ({hint}) ").strip().lower()
    if not raw:
        return default
    return raw in ("y", "yes")


def choose(message: str, items: List[T], describe: Callable[[T], str]) -> T:
    """Numbered menu; returns the picked item."""
    print(message)
    for i, item in enumerate(items, start=1):
        print(f"  {i}) {describe(item)}")
    while True:
        raw = input("> ").strip()
        try:
            idx = int(raw)
        except ValueError:
            idx = 0
        if 1 <= idx <= len(items):
            return items[idx - 1]
        print(f"Enter a number between 1 and {len(items)}")
