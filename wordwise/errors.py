"""Error kinds raised by the drilling core.

None of these are fatal: callers render them as "nothing to quiz",
"import rejected" or "try again" rather than crashing.
"""
from __future__ import annotations


class WordWiseError(Exception):
    """Base class for all wordwise errors."""


class EmptyCorpusError(WordWiseError):
    """No items match the requested filter, so there is nothing to quiz."""


class MalformedImportError(WordWiseError):
    """A backup or wrong-item file failed its structural check."""


class StatisticsWriteError(WordWiseError):
    """The statistics store could not persist a write."""


class SessionStateError(WordWiseError):
    """A session action was attempted in a state that does not allow it."""
