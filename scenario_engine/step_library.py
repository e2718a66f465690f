"""
Built-in step vocabulary used by the scenario generator.

Every generated step line is an instance of one of these templates, so a
generated scenario always binds to a catalogued pattern: either one already
present in the step catalog, or a stub created from the template.
"""

from dataclasses import dataclass, field
from typing import Tuple

from scenario_engine.schemas import StepCategory, StepDefinitionEntry, StepParameter
from scenario_engine.step_stubs import placeholder_types


@dataclass(frozen=True)
class StepTemplate:
    keyword: str
    pattern: str
    description: str
    params: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    category: StepCategory = StepCategory.DOMAIN

    def instantiate(self, *values) -> str:
        """
        Fill the pattern's placeholders, in order.

        String placeholders are quoted; numbers are inserted bare.
        """
        types = placeholder_types(self.pattern)
        if len(values) != len(types):
            raise ValueError(f"Template '{self.pattern}' takes {len(types)} values, got {len(values)}")
        text = self.pattern
        for value, param_type in zip(values, types):
            rendered = f'"{value}"' if param_type == "string" else str(value)
            text = text.replace("{" + param_type + "}", rendered, 1)
        return text

    def to_entry(self, source_file: str) -> StepDefinitionEntry:
        types = placeholder_types(self.pattern)
        return StepDefinitionEntry(
            pattern=self.pattern,
            description=self.description,
            parameters=[
                StepParameter(name=name, type=param_type, description=detail)
                for (name, detail), param_type in zip(self.params, types)
            ],
            source_file=source_file,
            keyword=self.keyword,
            category=self.category,
        )


ACTOR_EXISTS = StepTemplate(
    "Given", "a {string} user exists",
    "Ensures a user acting in the given role exists.",
    (("role", "role of the acting user"),),
    StepCategory.SHARED,
)
RECORD_EXISTS = StepTemplate(
    "Given", "a {string} record exists",
    "Ensures a stored record of the given entity exists.",
    (("entity", "name of the stored entity"),),
    StepCategory.PERSISTENCE,
)
PERFORMS_ACTION = StepTemplate(
    "When", "the {string} user performs {string}",
    "The acting user performs a domain action.",
    (("role", "role of the acting user"), ("action", "domain action performed")),
    StepCategory.DOMAIN,
)
SUBMITS_VALUE = StepTemplate(
    "When", "the {string} user submits {string} as the {string}",
    "The acting user submits a value for one input field.",
    (("role", "role of the acting user"), ("value", "submitted value"), ("field", "input field name")),
    StepCategory.EXTERNAL_CALL,
)
REJECTED_WITH = StepTemplate(
    "Then", "the operation is rejected with message {string}",
    "Asserts the operation failed with the exact message.",
    (("message", "exact rejection message"),),
    StepCategory.SHARED,
)
USER_SEES = StepTemplate(
    "Then", "the {string} user sees {string}",
    "Asserts the acting user observes the exact outcome.",
    (("role", "role of the acting user"), ("outcome", "exact observable outcome")),
    StepCategory.SHARED,
)
