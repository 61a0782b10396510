"""
Common path-prefix handling.

Received paths are often absolute paths from the sending machine, such as
``C:\\Users\\me\\photos\\a.jpg`` or ``/mnt/x/a.jpg``.  A receiver started with
strip-prefix drops the leading components shared by every file in the
session so only the interesting part of the tree is recreated.

The prefix only ever contains whole components: ``/home/al/x`` and
``/home/alice/y`` share ``/home/``, never ``/home/al``.
"""

import os
from typing import Sequence

from .config import PATH_SEPARATORS
from .errors import FramingError


def _last_separator(path: str) -> int:
    return max(path.rfind(sep) for sep in PATH_SEPARATORS)


def common_prefix(paths: Sequence[str]) -> str:
    """Longest run of whole leading components shared by every path.

    The result is empty for fewer than two paths, or when the paths share
    no complete directory below the root.  Otherwise it ends with a separator.
    """
    if len(paths) < 2:
        return ""

    shared = os.path.commonprefix(list(paths))
    # Cut back to the last separator so a partially matching component
    # is never included.
    shared = shared[: _last_separator(shared) + 1]
    # A bare root is not a shared component.
    if not shared.strip("".join(PATH_SEPARATORS)):
        return ""
    return shared


def strip_prefix(path: str, prefix: str) -> str:
    """Remove *prefix* from *path*.

    Raises FramingError when *prefix* is not a whole-component prefix of
    *path*, which means the sender's hint does not hold for this entry.
    """
    if not prefix:
        return path
    if not prefix.endswith(PATH_SEPARATORS):
        raise FramingError(f"prefix hint {prefix!r} does not end on a separator")
    if not path.startswith(prefix):
        raise FramingError(f"path {path!r} does not start with prefix hint {prefix!r}")
    return path[len(prefix):]
