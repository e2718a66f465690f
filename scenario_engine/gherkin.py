"""
Gherkin Document Model

Parses and renders feature files in both text formats:
- plain (`.feature`): bare Gherkin keywords, tag lines above each block
- annotated (`.feature.md`): Markdown headings for blocks, bold keywords on
  list-item steps, tags as inline code below each heading, Markdown tables

Both formats share one document model so the catalog, the generator and the
splitter never care which format is active.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from scenario_engine.schemas import ConstructKind, ScenarioRef, TextFormat

STEP_KEYWORDS = ("Given", "When", "Then", "And", "But")
SCENARIO_KEYWORDS = {
    "scenario": ConstructKind.SCENARIO,
    "example": ConstructKind.SCENARIO,
    "scenario outline": ConstructKind.OUTLINE,
    "scenario template": ConstructKind.OUTLINE,
}

_TAG_RE = re.compile(r"@[^\s`]+")
_ANNOTATED_TAG_LINE = re.compile(r"^(`@[^`]+`\s*)+$")
_ANNOTATED_STEP = re.compile(r"^[-*]\s+\*\*(Given|When|Then|And|But)\*\*\s+(.*)$")
_TABLE_SEPARATOR = re.compile(r"^\|(\s*:?-{3,}:?\s*\|)+$")
_CELL_SPLIT = re.compile(r"(?<!\\)\|")


@dataclass
class Step:
    """One step line; keyword is always Given, When or Then (And/But are resolved)."""
    keyword: str
    text: str
    table: List[List[str]] = field(default_factory=list)


@dataclass
class ExamplesTable:
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)


@dataclass
class ScenarioBlock:
    """A scenario or scenario outline with its steps."""
    name: str
    tags: List[str] = field(default_factory=list)
    kind: ConstructKind = ConstructKind.SCENARIO
    steps: List[Step] = field(default_factory=list)
    examples: Optional[ExamplesTable] = None
    line: int = 0

    @property
    def example_count(self) -> int:
        return len(self.examples.rows) if self.examples else 0

    @property
    def givens(self) -> List[Step]:
        return [step for step in self.steps if step.keyword == "Given"]

    def to_ref(self, source_file: str = "") -> ScenarioRef:
        return ScenarioRef(
            name=self.name,
            tags=self.tags or ["@untagged"],
            kind=self.kind,
            example_count=self.example_count,
            source_file=source_file,
        )


@dataclass
class FeatureDocument:
    """A parsed feature file."""
    title: str
    tags: List[str] = field(default_factory=list)
    description: List[str] = field(default_factory=list)
    background: List[Step] = field(default_factory=list)
    scenarios: List[ScenarioBlock] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return self.description[0] if self.description else ""


def split_table_row(line: str) -> List[str]:
    inner = line.strip()[1:]
    if inner.endswith("|") and not inner.endswith("\\|"):
        inner = inner[:-1]
    return [cell.strip().replace("\\|", "|") for cell in _CELL_SPLIT.split(inner)]


def _normalize_annotated(line: str) -> Tuple[str, bool]:
    """
    Rewrite one annotated line into its plain-Gherkin equivalent.

    Returns:
        (normalized line, True when the line is an inline-code tag line)
    """
    stripped = line.strip()
    if _ANNOTATED_TAG_LINE.match(stripped):
        return " ".join(_TAG_RE.findall(stripped.replace("`", " "))), True
    if stripped.startswith("#"):
        heading = stripped.lstrip("#").strip()
        if heading.lower() in ("background", "examples"):
            heading += ":"
        return heading, False
    match = _ANNOTATED_STEP.match(stripped)
    if match:
        return f"{match.group(1)} {match.group(2)}", False
    if _TABLE_SEPARATOR.match(stripped):
        return "", False
    return stripped, False


def parse_feature(text: str, text_format: TextFormat = TextFormat.PLAIN) -> FeatureDocument:
    """
    Parse a feature file in either text format.

    Args:
        text: File content
        text_format: Format the content is written in

    Returns:
        FeatureDocument (title empty when no Feature header was found)
    """
    annotated = text_format is TextFormat.ANNOTATED
    doc = FeatureDocument(title="")
    pending_tags: List[str] = []
    current: Optional[ScenarioBlock] = None
    in_background = False
    in_examples = False
    in_description = False
    last_step: Optional[Step] = None
    last_keyword = "Given"

    for number, raw in enumerate(text.splitlines(), 1):
        if annotated:
            line, is_tag_line = _normalize_annotated(raw)
        else:
            line = raw.strip()
            is_tag_line = line.startswith("@")
            if line.startswith("#"):
                continue
        if not line:
            continue

        if is_tag_line:
            tags = _TAG_RE.findall(line)
            # Annotated tags sit below the heading they belong to
            if annotated and current is not None and not current.steps:
                current.tags.extend(tags)
            elif annotated and current is None and not in_background and doc.title and not doc.tags:
                doc.tags.extend(tags)
            else:
                pending_tags.extend(tags)
            continue

        head, _, rest = line.partition(":")
        head_key = head.strip().lower()

        if head_key == "feature" and rest:
            doc.title = rest.strip()
            doc.tags.extend(pending_tags)
            pending_tags = []
            in_description = True
            continue
        if head_key == "background":
            in_background, in_examples, in_description = True, False, False
            current = None
            last_step = None
            continue
        if head_key in SCENARIO_KEYWORDS and rest:
            current = ScenarioBlock(
                name=rest.strip(),
                tags=pending_tags,
                kind=SCENARIO_KEYWORDS[head_key],
                line=number,
            )
            doc.scenarios.append(current)
            pending_tags = []
            in_background, in_examples, in_description = False, False, False
            last_step = None
            continue
        if head_key in ("examples", "scenarios") and current is not None:
            in_examples = True
            current.examples = None
            continue

        if line.startswith("|"):
            row = split_table_row(line)
            if in_examples and current is not None:
                if current.examples is None:
                    current.examples = ExamplesTable(headers=row)
                else:
                    current.examples.rows.append(row)
            elif last_step is not None:
                last_step.table.append(row)
            continue

        keyword, _, step_text = line.partition(" ")
        # Before any background or scenario, keyword-led lines are still description
        if keyword in STEP_KEYWORDS and step_text and not in_description:
            if keyword in ("And", "But"):
                keyword = last_keyword
            last_keyword = keyword
            last_step = Step(keyword=keyword, text=step_text.strip())
            if in_background:
                doc.background.append(last_step)
            elif current is not None:
                current.steps.append(last_step)
            continue

        if in_description:
            doc.description.append(line)

    return doc


def _render_table(rows: List[List[str]], indent: str, markdown: bool) -> List[str]:
    escaped = [[cell.replace("|", "\\|") for cell in row] for row in rows]
    widths = [max(len(row[i]) for row in escaped if i < len(row)) for i in range(len(escaped[0]))]

    def render_row(row: List[str]) -> str:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row)]
        return f"{indent}| " + " | ".join(cells) + " |"

    lines = [render_row(escaped[0])]
    if markdown:
        lines.append(f"{indent}| " + " | ".join("-" * max(3, w) for w in widths) + " |")
    lines.extend(render_row(row) for row in escaped[1:])
    return lines


def _render_steps(steps: List[Step], text_format: TextFormat, indent: str) -> List[str]:
    lines = []
    previous = None
    for step in steps:
        keyword = "And" if step.keyword == previous else step.keyword
        previous = step.keyword
        if text_format is TextFormat.ANNOTATED:
            lines.append(f"- **{keyword}** {step.text}")
        else:
            lines.append(f"{indent}{keyword} {step.text}")
        if step.table:
            lines.extend(_render_table(step.table, indent + "  ", text_format is TextFormat.ANNOTATED))
    return lines


def render_scenario_block(block: ScenarioBlock, text_format: TextFormat) -> str:
    """
    Render one scenario block, preceded by a blank separator line.

    Used both for whole-file rendering and for appending to an existing file.
    """
    heading = "Scenario Outline" if block.kind is ConstructKind.OUTLINE else "Scenario"
    if text_format is TextFormat.ANNOTATED:
        lines = [
            "",
            f"## {heading}: {block.name}",
            "",
            " ".join(f"`{tag}`" for tag in block.tags),
            "",
        ]
        lines.extend(_render_steps(block.steps, text_format, ""))
        if block.examples:
            lines.extend(["", "### Examples", ""])
            lines.extend(_render_table([block.examples.headers] + block.examples.rows, "", True))
    else:
        lines = [
            "",
            f"  {' '.join(block.tags)}",
            f"  {heading}: {block.name}",
        ]
        lines.extend(_render_steps(block.steps, text_format, "    "))
        if block.examples:
            lines.extend(["", "    Examples:"])
            lines.extend(_render_table([block.examples.headers] + block.examples.rows, "      ", False))
    return "\n".join(lines) + "\n"


def render_feature(doc: FeatureDocument, text_format: TextFormat) -> str:
    """
    Render a complete feature document.

    Args:
        doc: Document to render
        text_format: Target text format

    Returns:
        File content ending with a newline
    """
    if text_format is TextFormat.ANNOTATED:
        lines = [f"# Feature: {doc.title}", ""]
        if doc.tags:
            lines.extend([" ".join(f"`{tag}`" for tag in doc.tags), ""])
        for line in doc.description:
            lines.append(line)
        if doc.background:
            lines.extend(["", "## Background", ""])
            lines.extend(_render_steps(doc.background, text_format, ""))
    else:
        lines = []
        if doc.tags:
            lines.append(" ".join(doc.tags))
        lines.append(f"Feature: {doc.title}")
        lines.extend(f"  {line}" for line in doc.description)
        if doc.background:
            lines.extend(["", "  Background:"])
            lines.extend(_render_steps(doc.background, text_format, "    "))

    content = "\n".join(lines) + "\n"
    for block in doc.scenarios:
        content += render_scenario_block(block, text_format)
    return content
