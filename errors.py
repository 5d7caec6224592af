# errors.py
"""
Error taxonomy shared by every module.

Each failure is classified as exactly one of:
  - Internal:          the environment failed (OS, disk, ...)
  - InvalidArguments:  a caller-supplied value is wrong; nothing external was touched
  - External:          IPFS or Ethereum reported the failure
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Optional


class ExternalSystem(enum.Enum):
    IPFS = "IPFS"
    ETHEREUM = "Ethereum"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Cause:
    """
    Structured copy of a wrapped exception and its chain.

    kind は例外クラス名、message は str(exc)。
    """

    kind: str
    message: str
    cause: Optional["Cause"] = None

    @classmethod
    def from_exception(cls, exc: BaseException, _depth: int = 0) -> "Cause":
        inner = exc.__cause__
        if inner is None and not exc.__suppress_context__:
            inner = exc.__context__
        nested = None
        if inner is not None and inner is not exc and _depth < 16:
            nested = cls.from_exception(inner, _depth + 1)
        return cls(kind=type(exc).__name__, message=str(exc), cause=nested)

    def chain(self) -> list["Cause"]:
        out = []
        c: Optional[Cause] = self
        while c is not None:
            out.append(c)
            c = c.cause
        return out

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class Error(Exception):
    """Base class of every classified failure."""


class Internal(Error):
    def __init__(self, ctx_msg: str, error: BaseException) -> None:
        super().__init__(ctx_msg)
        self.ctx_msg = ctx_msg
        self.cause = Cause.from_exception(error)

    def __str__(self) -> str:
        return self.ctx_msg


class External(Error):
    def __init__(self, system: ExternalSystem, error: BaseException) -> None:
        super().__init__(system)
        self.system = system
        self.cause = Cause.from_exception(error)

    def __str__(self) -> str:
        return f"External error produced by the {self.system} system"


# name, name[1,3], name{field, method()}
_NAME = r"[A-Za-z_][A-Za-z0-9_\-]*"
_LIST_ITEMS = r"\[\s*\d+(?:\s*,\s*\d+)*\s*\]"
_STRUCT_FIELDS = rf"\{{\s*{_NAME}(?:\(\))?(?:\s*,\s*{_NAME}(?:\(\))?)*\s*\}}"
_ARG_RE = re.compile(rf"^{_NAME}(?:{_LIST_ITEMS}|{_STRUCT_FIELDS})?$")

ALL_ARGUMENTS = "<all>"


def _split_top_level(names: str) -> list[str]:
    parts = []
    depth = 0
    current = ""
    for ch in names:
        if ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += ch
    parts.append(current.strip())
    return parts


def valid_argument_names(names: str) -> bool:
    """
    Check `names` against the parameter naming convention.

    * a single parameter: its exact name (`filepath`)
    * items of a list parameter: square brackets (`files[2,5]`)
    * fields or method results of a struct parameter: curly brackets
      (`request{remote_path}`, `employee{name, position()}`)
    * several parameters: wrapped in round brackets, any of the above
      combined (`(p1,l[2],person{name})`)
    * every parameter is jointly invalid: `<all>`
    """
    if names == ALL_ARGUMENTS:
        return True
    if names.startswith("(") and names.endswith(")"):
        parts = _split_top_level(names[1:-1])
        if len(parts) < 2:
            return False
        return all(_ARG_RE.match(p) for p in parts)
    return bool(_ARG_RE.match(names))


class InvalidArguments(Error):
    """
    A caller passed a value that fails validation.

    Raised before any file or network effect, so it never carries a cause.
    """

    def __init__(self, names: str, msg: str) -> None:
        if not valid_argument_names(names):
            raise ValueError(f"BUG invalid argument names convention: {names!r}")
        super().__init__(names, msg)
        self.names = names
        self.msg = msg

    def __str__(self) -> str:
        return f"{self.names} arguments have invalid values. {self.msg}"
