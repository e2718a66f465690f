"""
Step Stub Dialects

Canonical step patterns are Cucumber expressions with typed placeholders
(`{string}`, `{int}`, `{float}`, `{word}`). Each step language renders and
parses stubs in its own registration style:

- python: behave decorators with parse-format fields
- typescript: @cucumber/cucumber registration calls
- go: godog regular expressions registered from `init()` blocks

Every stub is preceded by a description comment listing each parameter's
name and semantic type, and its body fails as pending.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from scenario_engine.schemas import (
    StepCategory,
    StepDefinitionEntry,
    StepLanguage,
    StepParameter,
    category_for_stem,
)

logger = logging.getLogger(__name__)

# Placeholder type -> regex fragment used for matching step text
PLACEHOLDER_REGEX = {
    "string": r'"([^"]*)"',
    "int": r"(-?\d+)",
    "float": r"(-?\d+(?:\.\d+)?)",
    "word": r"([^\s]+)",
}

_PLACEHOLDER_RE = re.compile(r"\{(string|int|float|word)\}")
_REGEX_SPECIALS = re.compile(r"([\\.^$*+?()\[\]{}|])")


def _escape_literal(text: str) -> str:
    """Escape regex metacharacters only; the result is valid for Python re and Go RE2."""
    return _REGEX_SPECIALS.sub(r"\\\1", text)


def placeholder_types(pattern: str) -> List[str]:
    """Placeholder types of a canonical pattern, in order."""
    return _PLACEHOLDER_RE.findall(pattern)


def pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Compile a canonical pattern into an anchored regex.

    Args:
        pattern: Cucumber expression, e.g. 'a {string} user exists'

    Returns:
        Compiled regex matching the full step text
    """
    parts = []
    position = 0
    for match in _PLACEHOLDER_RE.finditer(pattern):
        parts.append(_escape_literal(pattern[position:match.start()]))
        parts.append(PLACEHOLDER_REGEX[match.group(1)])
        position = match.end()
    parts.append(_escape_literal(pattern[position:]))
    return re.compile("^" + "".join(parts) + "$")


def matches(pattern: str, step_text: str) -> bool:
    return pattern_to_regex(pattern).match(step_text.strip()) is not None


def regex_to_pattern(regex: str) -> str:
    """Reverse of pattern_to_regex for regexes written by this module."""
    body = regex
    if body.startswith("^"):
        body = body[1:]
    if body.endswith("$"):
        body = body[:-1]
    for name, fragment in PLACEHOLDER_REGEX.items():
        body = body.replace(fragment, "{" + name + "}")
    return re.sub(r"\\(.)", r"\1", body)


def render_description(entry: StepDefinitionEntry, marker: str) -> List[str]:
    """Comment block describing a stub and its parameters."""
    lines = [f"{marker} {entry.description or entry.pattern}"]
    if entry.parameters:
        lines.append(f"{marker} Parameters:")
        for param in entry.parameters:
            detail = f": {param.description}" if param.description else ""
            lines.append(f"{marker}   {param.name} ({param.type}){detail}")
    else:
        lines.append(f"{marker} Parameters: none")
    return lines


_PARAM_LINE = re.compile(r"^(\w+)\s+\((\w+)\)(?::\s*(.*))?$")


def parse_description(comment_lines: List[str]) -> Tuple[str, Dict[str, StepParameter]]:
    """
    Parse a description comment block (markers already stripped).

    Returns:
        (description, parameters by name)
    """
    description_parts = []
    params: Dict[str, StepParameter] = {}
    in_params = False
    for line in comment_lines:
        if line.startswith("Parameters:"):
            in_params = True
            continue
        if in_params:
            match = _PARAM_LINE.match(line.strip())
            if match:
                params[match.group(1)] = StepParameter(
                    name=match.group(1),
                    type=match.group(2),
                    description=match.group(3) or "",
                )
        elif line:
            description_parts.append(line)
    return " ".join(description_parts), params


class StepDialect(ABC):
    """Rendering and parsing rules for one step language."""

    language: StepLanguage
    comment_marker = "//"

    @abstractmethod
    def file_header(self, extension: str, category: StepCategory) -> str:
        """Content written once when a step file is created."""

    @abstractmethod
    def render_stub(self, entry: StepDefinitionEntry, extension: str) -> str:
        """Render one stub (description comment included), ending with a newline."""

    @abstractmethod
    def _registrations(self, lines: List[str]) -> List[Tuple[int, str, str, List[str]]]:
        """Find registrations as (line index, keyword, canonical pattern, parameter names)."""

    def support_files(self) -> Dict[str, str]:
        """Extra files (relative to the step area) the language needs once."""
        return {}

    def is_step_file(self, relative_path: str) -> bool:
        name = relative_path.rsplit("/", 1)[-1]
        if name in self.support_files() or name == "__init__.py":
            return False
        return name.endswith(self.language.extensions)

    def parse(self, text: str, source_file: str) -> List[StepDefinitionEntry]:
        """
        Recover step definitions from a step file.

        Args:
            text: File content
            source_file: Path relative to the step area

        Returns:
            One entry per registration, in file order
        """
        lines = text.splitlines()
        stem = source_file.rsplit("/", 1)[-1].split(".", 1)[0]
        category = category_for_stem(stem)
        entries = []
        for index, keyword, pattern, names in self._registrations(lines):
            description, described = parse_description(self._comment_block(lines, index))
            types = placeholder_types(pattern)
            params = []
            for position, param_type in enumerate(types):
                name = names[position] if position < len(names) else f"arg{position + 1}"
                known = described.get(name)
                params.append(StepParameter(
                    name=name,
                    type=known.type if known else param_type,
                    description=known.description if known else "",
                ))
            entries.append(StepDefinitionEntry(
                pattern=pattern,
                description=description,
                parameters=params,
                source_file=source_file,
                keyword=keyword.capitalize(),
                category=category,
            ))
        return entries

    def _comment_block(self, lines: List[str], index: int) -> List[str]:
        block = []
        cursor = index - 1
        while cursor >= 0 and lines[cursor].strip() in ("func init() {",):
            cursor -= 1
        while cursor >= 0 and lines[cursor].strip().startswith(self.comment_marker):
            block.append(lines[cursor].strip()[len(self.comment_marker):].strip())
            cursor -= 1
        return list(reversed(block))


class PythonDialect(StepDialect):
    """behave step modules."""

    language = StepLanguage.PYTHON
    comment_marker = "#"

    FIELD_FORMATS = {"string": None, "int": "d", "float": "f", "word": "w"}
    _DECORATOR = re.compile(r"""^@(given|when|then|step)\(\s*'((?:[^'\\]|\\.)*)'\s*\)""")
    _FIELD = re.compile(r'"\{(\w+)\}"|\{(\w+)(?::(\w))?\}')
    _FORMAT_TYPES = {None: "word", "d": "int", "f": "float", "w": "word"}

    def file_header(self, extension: str, category: StepCategory) -> str:
        return (
            f'"""{category.heading} step definitions."""\n'
            "from behave import given, then, when\n"
        )

    def render_pattern(self, entry: StepDefinitionEntry) -> str:
        names = iter(param.name for param in entry.parameters)

        def field(match):
            name = next(names, "value")
            fmt = self.FIELD_FORMATS[match.group(1)]
            return f'"{{{name}}}"' if fmt is None else f"{{{name}:{fmt}}}"

        return _PLACEHOLDER_RE.sub(field, entry.pattern)

    def render_stub(self, entry: StepDefinitionEntry, extension: str) -> str:
        pattern = self.render_pattern(entry).replace("'", "\\'")
        args = "".join(f", {param.name}" for param in entry.parameters)
        lines = [""]
        lines.extend(render_description(entry, "#"))
        lines.extend([
            f"@{entry.keyword.lower()}('{pattern}')",
            f"def step_impl(context{args}):",
            f"    raise NotImplementedError('STEP: {entry.keyword} {pattern}')",
        ])
        return "\n".join(lines) + "\n"

    def _registrations(self, lines):
        found = []
        for index, line in enumerate(lines):
            match = self._DECORATOR.match(line.strip())
            if not match:
                continue
            raw = match.group(2).replace("\\'", "'")
            names = []

            def canonical(field_match):
                if field_match.group(1):
                    names.append(field_match.group(1))
                    return "{string}"
                names.append(field_match.group(2))
                return "{" + self._FORMAT_TYPES.get(field_match.group(3), "word") + "}"

            found.append((index, match.group(1), self._FIELD.sub(canonical, raw), names))
        return found


class TypeScriptDialect(StepDialect):
    """cucumber-js step modules (.ts, .js, .mjs)."""

    language = StepLanguage.TYPESCRIPT

    TS_TYPES = {"string": "string", "int": "number", "float": "number", "word": "string"}
    _CALL = re.compile(r"""^(Given|When|Then)\(\s*(['"])((?:(?!\2)[^\\]|\\.)*)\2\s*,\s*(?:async\s+)?function\s*\(([^)]*)\)""")

    def file_header(self, extension: str, category: StepCategory) -> str:
        if extension == ".js":
            return "const { Given, When, Then } = require('@cucumber/cucumber');\n"
        return "import { Given, When, Then } from '@cucumber/cucumber';\n"

    def render_stub(self, entry: StepDefinitionEntry, extension: str) -> str:
        typed = extension == ".ts"
        params = ", ".join(
            f"{param.name}: {self.TS_TYPES.get(param.type, 'string')}" if typed else param.name
            for param in entry.parameters
        )
        pattern = entry.pattern.replace("'", "\\'")
        lines = [""]
        lines.extend(render_description(entry, "//"))
        lines.extend([
            f"{entry.keyword}('{pattern}', async function ({params}) {{",
            f"  throw new Error('Pending: {pattern}');",
            "});",
        ])
        return "\n".join(lines) + "\n"

    def _registrations(self, lines):
        found = []
        for index, line in enumerate(lines):
            match = self._CALL.match(line.strip())
            if not match:
                continue
            pattern = re.sub(r"\\(.)", r"\1", match.group(3))
            names = [
                arg.split(":", 1)[0].strip()
                for arg in match.group(4).split(",")
                if arg.strip() and arg.split(":", 1)[0].strip() != "this"
            ]
            found.append((index, match.group(1), pattern, names))
        return found


class GoDialect(StepDialect):
    """godog step files registering through a shared step registry."""

    language = StepLanguage.GO
    REGISTRY_FILE = "registry.go"

    GO_TYPES = {"string": "string", "int": "int", "float": "float64", "word": "string"}
    _REGISTER = re.compile(r'^registerStep\(\s*"(Given|When|Then)"\s*,\s*`([^`]*)`\s*,\s*func\s*\(([^)]*)\)')

    def file_header(self, extension: str, category: StepCategory) -> str:
        return 'package steps\n\nimport "github.com/cucumber/godog"\n'

    def support_files(self) -> Dict[str, str]:
        return {
            self.REGISTRY_FILE: (
                "package steps\n"
                "\n"
                'import "github.com/cucumber/godog"\n'
                "\n"
                "type stepDefinition struct {\n"
                "\tkeyword string\n"
                "\tpattern string\n"
                "\thandler interface{}\n"
                "}\n"
                "\n"
                "var stepRegistry []stepDefinition\n"
                "\n"
                "func registerStep(keyword, pattern string, handler interface{}) {\n"
                "\tstepRegistry = append(stepRegistry, stepDefinition{keyword, pattern, handler})\n"
                "}\n"
                "\n"
                "// InitializeScenario binds every registered step to the scenario context.\n"
                "func InitializeScenario(ctx *godog.ScenarioContext) {\n"
                "\tfor _, step := range stepRegistry {\n"
                "\t\tctx.Step(step.pattern, step.handler)\n"
                "\t}\n"
                "}\n"
            ),
        }

    def render_stub(self, entry: StepDefinitionEntry, extension: str) -> str:
        params = ", ".join(
            f"{param.name} {self.GO_TYPES.get(param.type, 'string')}" for param in entry.parameters
        )
        regex = pattern_to_regex(entry.pattern).pattern
        lines = [""]
        lines.extend(render_description(entry, "//"))
        lines.extend([
            "func init() {",
            f'\tregisterStep("{entry.keyword}", `{regex}`, func({params}) error {{',
            "\t\treturn godog.ErrPending",
            "\t})",
            "}",
        ])
        return "\n".join(lines) + "\n"

    def _registrations(self, lines):
        found = []
        for index, line in enumerate(lines):
            match = self._REGISTER.match(line.strip())
            if not match:
                continue
            names = [arg.strip().split()[0] for arg in match.group(3).split(",") if arg.strip()]
            found.append((index, match.group(1), regex_to_pattern(match.group(2)), names))
        return found


DIALECTS: Dict[StepLanguage, StepDialect] = {
    StepLanguage.PYTHON: PythonDialect(),
    StepLanguage.TYPESCRIPT: TypeScriptDialect(),
    StepLanguage.GO: GoDialect(),
}


def dialect_for(language: StepLanguage) -> StepDialect:
    return DIALECTS[language]


def language_for_path(relative_path: str) -> Optional[StepLanguage]:
    """Step language a file belongs to, judged by extension."""
    for language, dialect in DIALECTS.items():
        if dialect.is_step_file(relative_path):
            return language
    return None
