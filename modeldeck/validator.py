"""
Shallow validation of Cube.js model source.

Checks are heuristic: required markers, then a token scan that catches
unterminated strings, template literals and comments, and unbalanced
brackets. Nothing here understands the Cube.js schema itself.
"""

from typing import List, Tuple

from .errors import InvalidSyntaxError, ModelSyntaxError

DEFINITION_MARKERS = ("cube(", "view(")
STRUCTURE_MARKERS = ("sql:", "cubes:")

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {v: k for k, v in _OPENERS.items()}


def validate_model(text: str) -> None:
    """
    Raise if ``text`` does not look like a Cube.js model.

    Raises:
        InvalidSyntaxError: a required marker is missing.
        ModelSyntaxError: the source does not tokenize cleanly.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidSyntaxError("Model must contain a cube() or view() function")

    if not any(marker in text for marker in DEFINITION_MARKERS):
        raise InvalidSyntaxError("Model must contain a cube() or view() function")

    if not any(marker in text for marker in STRUCTURE_MARKERS):
        raise InvalidSyntaxError("Model must contain SQL definition or cube references")

    check_syntax(text)


def check_syntax(text: str) -> None:
    """Scan JavaScript-ish source for unterminated literals and bracket mismatches."""
    # Stack of (opener, line). Template literals push "`" so that
    # ${...} substitutions nest correctly.
    stack: List[Tuple[str, int]] = []
    line = 1
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch == "\n":
            line += 1
            i += 1
            continue

        in_template = bool(stack) and stack[-1][0] == "`"

        if in_template:
            if ch == "\\":
                if text.startswith("\n", i + 1):
                    line += 1
                i += 2
                continue
            if ch == "`":
                stack.pop()
                i += 1
                continue
            if text.startswith("${", i):
                stack.append(("${", line))
                i += 2
                continue
            i += 1
            continue

        if text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue

        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise ModelSyntaxError(f"Unterminated comment starting on line {line}", line=line)
            line += text.count("\n", i, end)
            i = end + 2
            continue

        if ch in ("'", '"'):
            start_line = line
            i += 1
            while i < n and text[i] != ch:
                if text[i] == "\\":
                    i += 1
                elif text[i] == "\n":
                    raise ModelSyntaxError(f"Unterminated string on line {start_line}", line=start_line)
                i += 1
            if i >= n:
                raise ModelSyntaxError(f"Unterminated string on line {start_line}", line=start_line)
            i += 1
            continue

        if ch == "`":
            stack.append(("`", line))
            i += 1
            continue

        if ch in _OPENERS:
            stack.append((ch, line))
        elif ch == "}" and stack and stack[-1][0] == "${":
            stack.pop()
        elif ch in _CLOSERS:
            if not stack or stack[-1][0] != _CLOSERS[ch]:
                raise ModelSyntaxError(f"Unexpected token '{ch}' on line {line}", line=line)
            stack.pop()
        i += 1

    if stack:
        opener, opened_on = stack[-1]
        if opener == "`":
            raise ModelSyntaxError(f"Unterminated template literal starting on line {opened_on}", line=opened_on)
        if opener == "${":
            raise ModelSyntaxError(f"Unterminated ${{...}} substitution on line {opened_on}", line=opened_on)
        raise ModelSyntaxError(f"Unclosed '{opener}' opened on line {opened_on}", line=opened_on)
