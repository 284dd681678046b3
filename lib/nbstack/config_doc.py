"""Keyed rewriting of Python settings modules.

A settings module is treated as a mapping from top-level assignment names to
values. Managed names are located with :mod:`ast`, so multi-line literals are
replaced whole; the first assignment of a name is rewritten in place and any
later assignment of the same name is dropped, as is any augmented assignment
(``+=`` and friends) of a managed name. Names that are not assigned
anywhere yet are appended in one block at the end. Everything else in the
document, comments included, is kept byte for byte.
"""
from __future__ import annotations

import ast
import io
from typing import Any, Iterable, Mapping

from .errors import ConfigSynthesisError

MANAGED_HEADER = "# Settings managed by nbstack"

_INDENT = "    "


def render_value(value: Any, level: int = 0) -> str:
    pad = _INDENT * (level + 1)
    close = _INDENT * level
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        items = [f"{pad}{render_value(k)}: {render_value(v, level + 1)}," for k, v in value.items()]
        return "{\n" + "\n".join(items) + "\n" + close + "}"
    if isinstance(value, (list, tuple)):
        if all(_is_scalar(item) for item in value):
            inner = ", ".join(render_value(item) for item in value)
            return f"[{inner}]"
        items = [f"{pad}{render_value(item, level + 1)}," for item in value]
        return "[\n" + "\n".join(items) + "\n" + close + "]"
    if _is_scalar(value):
        return repr(value)
    raise ConfigSynthesisError(f"Cannot render setting value of type {type(value).__name__}.")


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def render_setting(name: str, value: Any) -> str:
    return f"{name} = {render_value(value)}\n"


def _augmented_name(stmt: ast.stmt) -> str | None:
    if isinstance(stmt, ast.AugAssign) and isinstance(stmt.target, ast.Name):
        return stmt.target.id
    return None


def _assigned_names(stmt: ast.stmt) -> list[str]:
    if isinstance(stmt, ast.Assign):
        return [t.id for t in stmt.targets if isinstance(t, ast.Name)]
    if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
        return [stmt.target.id]
    return []


def assigned_settings(document: str) -> dict[str, int]:
    """Count top-level assignments per name."""
    counts: dict[str, int] = {}
    for stmt in _parse(document).body:
        for name in _assigned_names(stmt):
            counts[name] = counts.get(name, 0) + 1
    return counts


def _end_line(stmt: ast.stmt, occupied: dict[int, int], name: str) -> int:
    end_lineno = stmt.end_lineno or stmt.lineno
    if occupied.get(stmt.lineno, 0) > 1 or occupied.get(end_lineno, 0) > 1:
        raise ConfigSynthesisError(
            f"Setting {name} shares line {stmt.lineno} with another statement; put it on its own line."
        )
    return end_lineno


def _parse(document: str) -> ast.Module:
    try:
        return ast.parse(document)
    except SyntaxError as exc:
        raise ConfigSynthesisError(f"Configuration document is not valid Python: {exc}") from exc


def synthesize(
    document: str,
    settings: Mapping[str, Any],
    *,
    remove: Iterable[str] = (),
) -> str:
    """Return ``document`` with every name in ``settings`` assigned exactly once.

    Names in ``remove`` lose all of their top-level assignments.
    """
    drop = set(remove) - set(settings)
    tree = _parse(document)
    # Only \n, \r\n and \r end a line for ast; str.splitlines also breaks on \x0c and friends.
    lines = io.StringIO(document, newline="").readlines()

    # 0-based start line -> (exclusive end line, replacement text or None)
    edits: dict[int, tuple[int, str | None]] = {}
    seen: set[str] = set()
    occupied: dict[int, int] = {}
    for stmt in tree.body:
        for line_no in range(stmt.lineno, (stmt.end_lineno or stmt.lineno) + 1):
            occupied[line_no] = occupied.get(line_no, 0) + 1

    for stmt in tree.body:
        augmented = _augmented_name(stmt)
        if augmented is not None and (augmented in settings or augmented in drop):
            edits[stmt.lineno - 1] = (_end_line(stmt, occupied, augmented), None)

    for stmt in tree.body:
        names = _assigned_names(stmt)
        managed = [n for n in names if n in settings or n in drop]
        if not managed:
            continue
        if len(names) > 1:
            raise ConfigSynthesisError(
                f"Chained assignment of managed setting {managed[0]} (line {stmt.lineno}) cannot be rewritten."
            )
        name = managed[0]
        end_lineno = _end_line(stmt, occupied, name)
        replacement = None
        if name in settings and name not in seen:
            replacement = render_setting(name, settings[name])
            seen.add(name)
        edits[stmt.lineno - 1] = (end_lineno, replacement)

    out: list[str] = []
    idx = 0
    while idx < len(lines):
        edit = edits.get(idx)
        if edit is None:
            out.append(lines[idx])
            idx += 1
            continue
        end, replacement = edit
        if replacement is not None:
            out.append(replacement)
        idx = end

    missing = [name for name in settings if name not in seen]
    if missing:
        if out and not out[-1].endswith("\n"):
            out[-1] = out[-1] + "\n"
        out.append("\n" + MANAGED_HEADER + "\n")
        for name in missing:
            out.append(render_setting(name, settings[name]))
    return "".join(out)
