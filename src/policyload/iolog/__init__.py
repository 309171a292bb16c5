"""
I/O-log paths: sequence ids and template expansion.
"""

from .sequence import (
    SequenceAllocator,
    SequenceError,
    format_seq,
    iolog_nextid,
)
from .path_escapes import (
    DIR_ESCAPES,
    PATH_ESCAPES,
    PathEscape,
)
from .expand import (
    PATH_MAX,
    ExpandedPath,
    PathExpansionError,
    build_iolog_path,
    expand_iolog_path,
)

__all__ = [
    "SequenceAllocator",
    "SequenceError",
    "format_seq",
    "iolog_nextid",
    "DIR_ESCAPES",
    "PATH_ESCAPES",
    "PathEscape",
    "PATH_MAX",
    "ExpandedPath",
    "PathExpansionError",
    "build_iolog_path",
    "expand_iolog_path",
]
