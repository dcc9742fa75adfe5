"""Argument vectors for git invocations.

An :class:`ArgumentVector` is an ordered list of tokens handed to the
process launcher as-is. Tokens are never joined into a shell string and
never re-split on whitespace, so a token containing spaces or quotes stays
a single argument.

Tokens may be *masked*: they are passed to the process unchanged but
rendered as ``******`` wherever the command line is shown to a human.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator

from git_gateway.constants import MASK
from git_gateway.utils import redact_url


class ArgumentVector:
    """Ordered, shell-independent command line with a sensitivity mask.

    Args:
        *tokens: Initial (non-sensitive) tokens.
        is_windows: Target platform for revision-expression quoting.
            Defaults to the current platform.
    """

    def __init__(self, *tokens: str, is_windows: bool | None = None) -> None:
        self._tokens: list[str] = []
        self._mask: list[bool] = []
        self.is_windows = (os.name == "nt") if is_windows is None else is_windows
        self.add(*tokens)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add(self, *tokens: str) -> ArgumentVector:
        """Append each token as one atomic argument."""
        for token in tokens:
            self._append(token, masked=False)
        return self

    def add_all(self, tokens: Iterable[str]) -> ArgumentVector:
        for token in tokens:
            self._append(token, masked=False)
        return self

    def add_masked(self, token: str) -> ArgumentVector:
        """Append a sensitive token that is hidden from every display form."""
        self._append(token, masked=True)
        return self

    def add_revision(self, expression: str) -> ArgumentVector:
        """Append a revision expression such as ``v1.0^{commit}``.

        On Windows, ``git.cmd`` runs through cmd.exe, which treats ``^`` as
        an escape character outside double quotes. Expressions containing
        ``^{`` are therefore wrapped in double quotes there. No other token
        receives platform-specific quoting.
        """
        if self.is_windows and "^{" in expression:
            expression = f'"{expression}"'
        self._append(expression, masked=False)
        return self

    def prepend(self, *tokens: str) -> ArgumentVector:
        """Insert tokens at the front, preserving their order."""
        for token in reversed(tokens):
            self._check(token)
            self._tokens.insert(0, token)
            self._mask.insert(0, False)
        return self

    def _append(self, token: str, *, masked: bool) -> None:
        self._check(token)
        self._tokens.append(token)
        self._mask.append(masked)

    @staticmethod
    def _check(token: str) -> None:
        if not isinstance(token, str):
            raise TypeError(f"argument tokens must be str, got {type(token).__name__}")
        if "\x00" in token:
            raise ValueError("argument tokens must not contain NUL bytes")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def to_command_array(self) -> list[str]:
        """Return the tokens exactly as they are passed to the process."""
        return list(self._tokens)

    def masked_values(self) -> list[str]:
        """Return the raw values of all masked tokens."""
        return [t for t, m in zip(self._tokens, self._mask) if m]

    def to_display_string(self) -> str:
        """Human-readable command line with sensitive content masked.

        Masked tokens become ``******``; URL passwords in any token are
        masked as well.
        """
        shown = [MASK if masked else redact_url(token) for token, masked in zip(self._tokens, self._mask)]
        return " ".join(shown)

    def copy(self) -> ArgumentVector:
        clone = ArgumentVector(is_windows=self.is_windows)
        clone._tokens = list(self._tokens)
        clone._mask = list(self._mask)
        return clone

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __repr__(self) -> str:
        return f"ArgumentVector({self.to_display_string()!r})"
