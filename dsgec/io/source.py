"""
Source lines of a model file.

The compiler works on already macro-expanded text. The only preprocessing
done here is comment removal: ``//`` and ``%`` line comments and
``/* ... */`` block comments, with double-quoted strings left untouched.
Every surviving line keeps the file name and line number it came from so
errors can point back at it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from dsgec.errors import ParseError

VALID_EXTENSIONS = (".rs", ".rz", ".dsge")


@dataclass(frozen=True)
class SourceLine:
    """One line of model code with its origin."""

    code: str
    filename: str = "<string>"
    line: int = 0

    def error(self, message: str) -> ParseError:
        return ParseError(message, self.filename, self.line)

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}: {self.code}"


def resolve_model_file(name: Union[str, os.PathLike]) -> Path:
    """
    Locate a model file.

    A name with one of the valid extensions is used as is; a bare stem is
    tried with each extension in turn.
    """
    path = Path(name)
    if path.suffix:
        if path.suffix not in VALID_EXTENSIONS:
            raise ParseError(
                f"file extension {path.suffix} is not one of {', '.join(VALID_EXTENSIONS)}",
                str(path),
            )
        if not path.is_file():
            raise FileNotFoundError(f"model file {path} not found")
        return path
    for ext in VALID_EXTENSIONS:
        candidate = path.with_suffix(ext)
        if candidate.is_file():
            return candidate
    raise FileNotFoundError(f"no model file {path} with extension {', '.join(VALID_EXTENSIONS)}")


def read_model_file(name: Union[str, os.PathLike]) -> list[SourceLine]:
    path = resolve_model_file(name)
    text = path.read_text(encoding="utf-8")
    return lines_from_text(text, str(path))


def lines_from_text(text: str, filename: str = "<string>") -> list[SourceLine]:
    """Strip comments and return the non-empty lines of ``text``."""
    lines: list[SourceLine] = []
    in_block_comment = False
    for number, raw in enumerate(text.splitlines(), start=1):
        code, in_block_comment = _strip_comments(raw, in_block_comment)
        code = code.strip()
        if code:
            lines.append(SourceLine(code, filename, number))
    if in_block_comment:
        raise ParseError("unterminated /* comment", filename, len(text.splitlines()))
    return lines


def _strip_comments(raw: str, in_block_comment: bool) -> tuple[str, bool]:
    out: list[str] = []
    i = 0
    in_string = False
    n = len(raw)
    while i < n:
        c = raw[i]
        if in_block_comment:
            if raw.startswith("*/", i):
                in_block_comment = False
                i += 2
            else:
                i += 1
            continue
        if in_string:
            out.append(c)
            if c == '"':
                in_string = False
            i += 1
            continue
        if c == '"':
            in_string = True
            out.append(c)
        elif raw.startswith("/*", i):
            in_block_comment = True
            out.append(" ")
            i += 2
            continue
        elif raw.startswith("//", i) or c == "%":
            break
        else:
            out.append(c)
        i += 1
    return "".join(out), in_block_comment
