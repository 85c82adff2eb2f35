"""Shell script composition.

Core types and composition functions for the shell payloads sent to
instances: the ``&&``-chained first-boot user data, and the multi-line
scripts copied over SSH.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Final

# =============================================================================
# Core Types
# =============================================================================

type Op = str | Callable[[], str] | list[Op] | None
"""Operation type: a literal string, a function returning one, or a list of ops."""

STRICT_SHEBANG: Final = "#!/bin/bash -e"


def resolve(op: Op) -> str:
    """Resolve an operation to its string representation."""
    match op:
        case None:
            return ""
        case str(op):
            return op
        case list(op):
            return "\n".join(resolve(o) for o in op)
        case _:
            return op()


def steps(*ops: Op) -> Iterator[str]:
    """Yield every non-empty step, expanding nested lists in order."""
    for op in ops:
        match op:
            case list(op):
                yield from steps(*op)
            case _:
                step = resolve(op)
                if step:
                    yield step


# =============================================================================
# Composition
# =============================================================================


def chain(*ops: Op) -> str:
    """Compose operations into a single ``&&``-joined command.

    Empty steps are skipped, so optional sections can be passed as ``None``
    or ``[]``.

    Example:
        >>> chain("mkdir -p /app", None, ["chown ec2-user /app"])
        'mkdir -p /app && chown ec2-user /app'
    """
    return " && ".join(steps(*ops))


def script(*ops: Op, header: str = STRICT_SHEBANG) -> str:
    """Compose operations into a newline-separated script.

    The default header makes the whole script abort on the first failing line.

    Example:
        >>> script("echo a", "echo b")
        '#!/bin/bash -e\\necho a\\necho b\\n'
    """
    return "\n".join([header, *steps(*ops)]) + "\n"
