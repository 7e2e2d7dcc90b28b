"""
Tolerant parser for free-text diagnosis replies.

The model is asked for a fixed layout ("Diagnosis:", "Required parts:",
"Follow-up questions:") but nothing guarantees it sticks to it. Instead of
decoding an exact format, every line is classified (blank / heading / list
item / prose) and grouped into sections by the headings it recognises, in
English or Arabic. Anything that cannot be structured falls back to the raw
text as the summary with a low-confidence flag.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.config import MAX_FOLLOW_UP_QUESTIONS
from app.models.diagnosis import DiagnosisResult, FollowUpQuestion, RequiredPart


SUMMARY = "summary"
PARTS = "parts"
QUESTIONS = "questions"
OTHER = "other"

# Checked in this order, so "diagnosis questions" is a questions heading
HEADING_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    QUESTIONS: (
        "follow up questions",
        "followup questions",
        "clarifying questions",
        "questions",
        "أسئلة المتابعة",
        "الأسئلة",
        "أسئلة",
    ),
    PARTS: (
        "required parts",
        "parts required",
        "parts needed",
        "needed parts",
        "replacement parts",
        "parts to replace",
        "parts",
        "قطع الغيار المطلوبة",
        "القطع المطلوبة",
        "قطع الغيار",
    ),
    SUMMARY: (
        "diagnosis",
        "preliminary diagnosis",
        "initial diagnosis",
        "final diagnosis",
        "summary",
        "analysis",
        "assessment",
        "التشخيص",
        "التحليل",
        "الملخص",
    ),
}

NO_PARTS = {
    "none",
    "none required",
    "none needed",
    "no parts",
    "no parts required",
    "no parts needed",
    "n/a",
    "لا يوجد",
    "لا توجد",
    "لا شيء",
}

QUESTION_MARKS = ("?", "؟")

_DIGITS = r"[0-9٠-٩۰-۹]+"

LIST_ITEM_RE = re.compile(
    r"^(?:"
    r"[-*•–—·▪►●◦]\s+"
    rf"|(?:[Qq](?:uestion)?\s*)?\(?(?P<num>{_DIGITS})(?:\.(?!\d)|\)|[:\-–](?=\s))\s*"
    r")(?P<body>\S.*)$"
)
HEADING_COLON_RE = re.compile(r"^(?P<title>[^:：]{1,60}?)\s*[:：]\s*(?P<rest>.*)$")
PART_SEPARATOR_RE = re.compile(r"\s*[:：]\s*|\s+[-–—]\s+|\s+\(")

MAX_HEADING_WORDS = 6
MAX_PART_NAME_WORDS = 8


@dataclass
class _Line:
    kind: str                   # "blank" | "item" | "prose"
    text: str                   # line as written, right-stripped
    body: str = ""              # item text without its marker, or stripped prose
    indent: int = 0
    number: Optional[int] = None


@dataclass
class _Section:
    kind: str
    heading: Optional[str] = None
    lines: List[_Line] = field(default_factory=list)

    @property
    def has_items(self) -> bool:
        return any(line.kind == "item" for line in self.lines)


# -------------------------------------------------
# Line classification
# -------------------------------------------------

def _clean(text: str) -> str:
    return text.replace("**", "").replace("__", "").strip()


def _normalize_title(title: str) -> str:
    title = _clean(title)
    title = re.sub(r"^[^\w]+", "", title)
    title = re.sub(r"[^\w]+$", "", title)
    title = title.replace("-", " ").replace("_", " ")
    return re.sub(r"\s+", " ", title).strip().casefold()


def _classify_heading(text: str) -> Optional[Tuple[str, str]]:
    """Returns (section kind, inline content) when the line is a heading."""
    stripped = text.strip()
    markdown = stripped.startswith("#")
    bold = stripped.startswith(("**", "__")) and stripped.rstrip(":：").endswith(("**", "__"))

    plain = _clean(stripped).lstrip("#").strip()
    match = HEADING_COLON_RE.match(plain)
    if match:
        title, inline, has_colon = match.group("title"), match.group("rest").strip(), True
    else:
        title, inline, has_colon = plain, "", False

    normalized = _normalize_title(title)
    if not normalized:
        return None

    words = len(normalized.split())
    relaxed = (has_colon or markdown or bold) and words <= MAX_HEADING_WORDS

    for kind, keywords in HEADING_KEYWORDS.items():
        for keyword in keywords:
            if normalized == keyword:
                return kind, inline
            if relaxed and (
                normalized.startswith(keyword + " ") or normalized.endswith(" " + keyword)
            ):
                return kind, inline

    if words <= MAX_HEADING_WORDS and not inline and (has_colon or markdown or bold):
        return OTHER, ""

    return None


def _classify_line(raw: str) -> _Line:
    text = raw.rstrip()
    if not text.strip():
        return _Line(kind="blank", text="")

    indent = len(text) - len(text.lstrip())
    stripped = text.strip()

    match = LIST_ITEM_RE.match(stripped)
    if match:
        number = match.group("num")
        return _Line(
            kind="item",
            text=text,
            body=_clean(match.group("body")),
            indent=indent,
            number=int(number) if number else None,
        )

    return _Line(kind="prose", text=text, body=_clean(stripped), indent=indent)


def _segment(text: str) -> List[_Section]:
    sections = [_Section(kind=SUMMARY)]

    for raw in text.splitlines():
        current = sections[-1]
        line = _classify_line(raw)

        if line.kind == "blank":
            current.lines.append(line)
            continue

        candidate = line.body if line.kind == "item" else line.text
        heading = _classify_heading(candidate)

        if heading is not None:
            kind, inline = heading
            # A numbered line only opens a section when it is a bare known heading
            if line.kind == "item" and (kind == OTHER or inline):
                heading = None
            # "You will need the following:" inside a parts list is an intro
            elif kind == OTHER and current.kind in (PARTS, QUESTIONS) and not current.has_items:
                heading = None

        if heading is None:
            current.lines.append(line)
            continue

        kind, inline = heading
        section = _Section(kind=kind, heading=line.text.strip())
        if inline:
            section.lines.append(_classify_line(inline))
        sections.append(section)

    return sections


# -------------------------------------------------
# Section readers
# -------------------------------------------------

def _split_part(body: str) -> Tuple[str, Optional[str]]:
    match = PART_SEPARATOR_RE.search(body)
    if not match or match.start() == 0:
        return body.strip(" .,;"), None

    name = body[:match.start()]
    rest = body[match.end():].strip()

    if match.group(0).strip() == "(":
        inside, _, after = rest.partition(")")
        rest = "; ".join(p for p in (inside.strip(), after.strip(" :-–—")) if p)

    return name.strip(" .,;\"'"), rest.strip() or None


def _is_no_parts(name: str) -> bool:
    key = name.casefold().strip(" .!")
    return key in NO_PARTS or key.startswith("no parts") or key.startswith("none ")


def _continues_part(line: _Line, base_indent: Optional[int]) -> bool:
    """Deeper indent or a lowercase start carries on the previous part."""
    if base_indent is not None and line.indent > base_indent:
        return True
    first = line.body[:1]
    return first.isalpha() and first.islower()


def _read_parts(lines: List[_Line]) -> List[RequiredPart]:
    entries: List[dict] = []
    current: Optional[dict] = None
    base_indent: Optional[int] = None
    itemless = not any(line.kind == "item" for line in lines)

    for line in lines:
        if line.kind == "blank":
            continue

        if itemless:
            starts_part = current is None or not _continues_part(line, base_indent)
        else:
            starts_part = line.kind == "item" and (base_indent is None or line.indent <= base_indent)

        if starts_part:
            name, rationale = _split_part(line.body)
            if itemless and (
                len(name.split()) > MAX_PART_NAME_WORDS or line.body.endswith((":", "："))
            ):
                # Bare one-per-line list, skip intros and sentences
                if current is not None:
                    current["notes"].append(line.body)
                continue
            if base_indent is None:
                base_indent = line.indent
            if not name or _is_no_parts(name):
                current = None
                continue
            current = {"name": name, "notes": [rationale] if rationale else []}
            entries.append(current)
        elif current is not None:
            current["notes"].append(line.body)

    merged: Dict[str, dict] = {}
    for entry in entries:
        key = entry["name"].casefold()
        if key in merged:
            merged[key]["notes"].extend(
                n for n in entry["notes"] if n not in merged[key]["notes"]
            )
        else:
            merged[key] = entry

    return [
        RequiredPart(name=entry["name"], rationale=" ".join(entry["notes"]) or None)
        for entry in merged.values()
    ]


def _read_questions(lines: List[_Line]) -> List[dict]:
    questions: List[dict] = []
    current: Optional[dict] = None
    base_indent: Optional[int] = None
    has_items = any(line.kind == "item" for line in lines)

    for line in lines:
        if line.kind == "blank":
            continue

        if line.kind == "item" and (base_indent is None or line.indent <= base_indent):
            if base_indent is None:
                base_indent = line.indent
            current = {"number": line.number, "text": line.body}
            questions.append(current)
        elif not has_items and line.body.endswith(QUESTION_MARKS):
            current = {"number": None, "text": line.body}
            questions.append(current)
        elif current is not None and not current["text"].endswith(QUESTION_MARKS):
            current["text"] = f"{current['text']} {line.body}"

    return [q for q in questions if q["text"]]


def _assign_ids(questions: List[dict], max_questions: int) -> List[FollowUpQuestion]:
    questions = questions[:max(max_questions, 0)]
    numbers = [q["number"] for q in questions]
    explicit = all(n is not None for n in numbers) and len(set(numbers)) == len(numbers)

    return [
        FollowUpQuestion(
            id=str(q["number"]) if explicit else str(index),
            question=q["text"],
        )
        for index, q in enumerate(questions, start=1)
    ]


def _join(lines: List[str]) -> str:
    text = "\n".join(lines).strip()
    return re.sub(r"\n{3,}", "\n\n", text)


# -------------------------------------------------
# Public entry point
# -------------------------------------------------

def parse_diagnosis(raw_text, max_questions: int = MAX_FOLLOW_UP_QUESTIONS) -> DiagnosisResult:
    """
    Splits a diagnosis reply into summary, required parts and follow-up
    questions. Never raises: unstructured text comes back as the summary
    with empty lists and ``low_confidence=True``.
    """
    if raw_text is None:
        raw_text = ""
    elif not isinstance(raw_text, str):
        raw_text = str(raw_text)

    sections = _segment(raw_text)

    known_heading = any(s.heading is not None and s.kind != OTHER for s in sections)
    any_items = any(s.has_items for s in sections)
    if not known_heading and not any_items:
        return DiagnosisResult(summary=raw_text.strip(), low_confidence=True)

    parts: List[RequiredPart] = []
    raw_questions: List[dict] = []
    summary_lines: List[str] = []
    has_question_section = any(s.kind == QUESTIONS for s in sections)

    for section in sections:
        if section.kind == PARTS:
            seen = {p.name.casefold() for p in parts}
            for part in _read_parts(section.lines):
                if part.name.casefold() not in seen:
                    seen.add(part.name.casefold())
                    parts.append(part)
            continue
        if section.kind == QUESTIONS:
            raw_questions.extend(_read_questions(section.lines))
            continue

        if section.kind == OTHER and section.heading:
            summary_lines.append("")
            summary_lines.append(section.heading)

        for line in section.lines:
            # Questions listed under the diagnosis without their own heading
            if (
                not has_question_section
                and section.kind == SUMMARY
                and line.kind == "item"
                and line.body.endswith(QUESTION_MARKS)
            ):
                raw_questions.append({"number": line.number, "text": line.body})
                continue
            summary_lines.append(line.text)

    summary = _join(summary_lines) or raw_text.strip()

    return DiagnosisResult(
        summary=summary,
        required_parts=parts,
        follow_up_questions=_assign_ids(raw_questions, max_questions),
    )
