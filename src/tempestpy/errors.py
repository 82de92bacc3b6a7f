# src/tempestpy/errors.py
# SPDX-License-Identifier: MIT
"""
Exception hierarchy for tempestpy.

Precondition failures derive from :class:`ValueError` so that callers who
already guard pipeline calls with ``except ValueError`` keep working.
"""

from __future__ import annotations

from typing import Iterable, Sequence


class TempestError(Exception):
    """Base class for every error raised by tempestpy."""


class MissingColumnsError(TempestError, ValueError):
    """A table lacks one or more columns required by an operation."""

    def __init__(self, missing: Iterable[str], what: str = "table") -> None:
        self.missing = sorted(str(c) for c in missing)
        self.what = what
        super().__init__(f"{what} is missing required columns: {self.missing}")

    def __reduce__(self):
        return type(self), (self.missing, self.what)


class MissingResponseError(MissingColumnsError):
    """``compare=True`` was requested but the table has no response column."""

    def __init__(self, response_col: str = "temperature") -> None:
        super().__init__([response_col], what="prediction table (compare=True)")

    def __reduce__(self):
        return type(self), (self.missing[0],)


class ColumnContractError(TempestError, ValueError):
    """Predictor columns differ between the training and inference tables."""

    def __init__(self, missing: Sequence[str], unexpected: Sequence[str]) -> None:
        self.missing = list(missing)
        self.unexpected = list(unexpected)
        parts = []
        if self.missing:
            parts.append(f"missing predictors {self.missing}")
        if self.unexpected:
            parts.append(f"unexpected predictors {self.unexpected}")
        super().__init__(
            "Predictor columns do not match the model bank: " + "; ".join(parts)
        )

    def __reduce__(self):
        return type(self), (self.missing, self.unexpected)


class StratumFitError(TempestError, RuntimeError):
    """The learner failed on one stratum while ``on_error='raise'``."""

    def __init__(self, stratum: str, reason: str) -> None:
        self.stratum = stratum
        self.reason = reason
        super().__init__(f"Learner failed on stratum {stratum!r}: {reason}")

    def __reduce__(self):
        return type(self), (self.stratum, self.reason)


__all__ = [
    "TempestError",
    "MissingColumnsError",
    "MissingResponseError",
    "ColumnContractError",
    "StratumFitError",
]
