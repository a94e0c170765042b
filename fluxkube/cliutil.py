"""Small helpers for command-line handling: usage errors and examples."""

from __future__ import annotations


class UsageError(Exception):
    """The command was invoked incorrectly."""


ERROR_WANTED_NO_ARGS = UsageError("expected no (non-flag) arguments")


def check_exactly_one(description: str, *supplied: bool) -> int:
    """Require exactly one of the options to be supplied; return its position."""
    chosen = [i for i, given in enumerate(supplied) if given]
    if len(chosen) > 1:
        raise UsageError("please supply only one of " + description)
    if not chosen:
        raise UsageError("please supply exactly one of " + description)
    return chosen[0]


def make_example(*examples: str) -> str:
    """Format example command lines, each indented by two spaces."""
    return "\n".join("  " + example for example in examples)