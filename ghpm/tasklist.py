"""Tasklist editing for parent issue bodies.

A body is parsed into line records (heading, task, blank, text) that
serialize back to the identical string, so adding or removing a reference
line never disturbs anything else in the body.
"""

import re
from dataclasses import dataclass
from enum import Enum

TASKS_HEADING = "## Tasks"

_HEADING = re.compile(r"^\s{0,3}(#{1,6})\s+(.*?)\s*#*\s*$")
_TASK = re.compile(r"^\s*[-*]\s\[[ xX]\]")
_TASKS_TITLE = re.compile(r"^(?:tasks?|sub-?issues?|checklist)$", re.IGNORECASE)


class LineKind(Enum):
    HEADING = "heading"
    TASK = "task"
    BLANK = "blank"
    TEXT = "text"


@dataclass(frozen=True)
class Line:
    kind: LineKind
    text: str
    title: str = ""  # heading text, headings only

    @property
    def is_tasks_heading(self) -> bool:
        return self.kind is LineKind.HEADING and bool(_TASKS_TITLE.match(self.title))


def classify(text: str) -> Line:
    if not text.strip():
        return Line(LineKind.BLANK, text)
    if _TASK.match(text):
        return Line(LineKind.TASK, text)
    heading = _HEADING.match(text)
    if heading:
        return Line(LineKind.HEADING, text, heading.group(2))
    return Line(LineKind.TEXT, text)


def parse(body: str) -> list[Line]:
    return [classify(text) for text in body.split("\n")]


def serialize(lines: list[Line]) -> str:
    return "\n".join(line.text for line in lines)


def reference(number: int) -> str:
    return f"- [ ] #{number}"


def _references(line: Line, number: int) -> bool:
    return line.kind is LineKind.TASK and re.search(rf"#{number}(?!\d)", line.text.strip()) is not None


def _insert_index(lines: list[Line], heading_index: int) -> int:
    """Index just past the list block under the heading (or just under the heading if it has none)."""
    i = heading_index + 1
    while i < len(lines) and lines[i].kind is LineKind.BLANK:
        i += 1
    if i >= len(lines) or lines[i].kind is not LineKind.TASK:
        return heading_index + 1
    while i < len(lines) and lines[i].kind is LineKind.TASK:
        i += 1
    return i


def _appended_section(number: int) -> re.Pattern[str]:
    # what add_task_reference appends to a body without a tasks heading
    return re.compile(
        rf"(?:(.*[^\n])\n\n)?{re.escape(TASKS_HEADING)}\n\n{re.escape(reference(number))}\n(\n*)",
        re.DOTALL,
    )


def add_task_reference(body: str, number: int) -> str:
    r"""Return ``body`` with ``- [ ] #<number>`` added to its tasks section.

    Idempotent: an existing reference to the same number leaves the body unchanged.
    Without a tasks heading a ``## Tasks`` section is appended after the
    content, separated by exactly one blank line. The body's own trailing
    newlines are not collapsed; they move after the new section, so
    ``remove_task_reference(add_task_reference(b, n), n) == b`` for every
    body ``b``. ``"Intro\n"`` becomes ``"Intro\n\n## Tasks\n\n- [ ] #n\n\n"``.
    """
    ref = reference(number)
    # checked ("- [x]") references count as present; "#450" is not "#45"
    if re.search(rf"[-*] \[[ xX]\] #{number}(?!\d)", body):
        return body

    lines = parse(body)
    heading_index = next((i for i, line in enumerate(lines) if line.is_tasks_heading), None)
    if heading_index is None:
        content = body.rstrip("\n")
        trailing = body[len(content) :]
        lead = f"{content}\n\n" if content else ""
        return f"{lead}{TASKS_HEADING}\n\n{ref}\n{trailing}"

    lines.insert(_insert_index(lines, heading_index), classify(ref))
    return serialize(lines)


def _drop_references(body: str, number: int) -> str:
    lines = parse(body)
    kept = [line for line in lines if not _references(line, number)]
    if len(kept) == len(lines):
        return body
    return serialize(kept)


def remove_task_reference(body: str, number: int) -> str:
    """Return ``body`` without task lines referencing ``#<number>``.

    Other lines are kept verbatim. A body that ends in exactly the section
    add_task_reference appends (optional content, one blank line,
    ``## Tasks``, one blank line, the reference) loses that whole section,
    heading included, whether or not the section was written by hand:
    the two shapes are indistinguishable, and removing a freshly added
    reference must restore the original body.
    """
    appended = _appended_section(number).fullmatch(body)
    if appended:
        return _drop_references(appended.group(1) or "", number) + appended.group(2)
    return _drop_references(body, number)
