"""
Pytest configuration for the scenario-engine test suite.

Provides:
- a temporary project builder (knowledge base plus optional artifact tree)
- a scripted interaction channel recording every question it is asked
- canned knowledge documents shared by the pipeline tests
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from scenario_engine.config import EngineConfig
from scenario_engine.filesystem import LocalFileSystem
from scenario_engine.interaction import InteractionChannel


PASSWORD_RESET_REQUIREMENTS = """\
---
id: UC-ab12-003
domain: auth
---
# UC-ab12-003: Password Reset

Customers who forgot their password can reset it through an emailed link.

## Actors

- Customer - a registered shop user

## Entities

- Reset token - single-use link credential

## Validation Rules

- Email must be a valid email address
- Password must be at least 8 characters

## Edge Cases

- Reset link expired after 24 hours

## Acceptance Criteria

- When the customer requests a reset, then a reset email is sent
- When the customer submits a new password, then the password is updated
"""

ORDER_EXPORT_REQUIREMENTS = """\
---
domain: orders
---
# Order Export

Shop managers export orders for accounting.

## Acceptance Criteria

- Manager can export orders as CSV so that "orders.csv" is downloaded
"""

REPORT_EXPORT_REQUIREMENTS = """\
---
domain: reporting
---
# Report Export

Analysts export sales reports as PDF documents.

## Acceptance Criteria

- Analyst can export the monthly report so that "report.pdf" is downloaded
"""

ORDER_HISTORY_ANNOTATED = """\
# Feature: Order History

`@orders` `@order-history`

Customers can review their past orders.

## Scenario: View past orders

`@happy-path` `@smoke`

- **Given** a "customer" user exists
- **When** the "customer" user performs "open order history"
- **Then** the "customer" user sees "3 orders"
"""

COMMON_STEPS_TS = """\
import { Given, When, Then } from '@cucumber/cucumber';

// Ensures a user acting in the given role exists.
// Parameters:
//   role (string): role of the acting user
Given('a {string} user exists', async function (role: string) {
  throw new Error('Pending: a {string} user exists');
});
"""


def invoice_feature(happy: int, validation: int) -> str:
    """A plain feature file with `happy` happy-path and `validation` validation scenarios."""
    lines = ["@billing", "Feature: Invoices", "  Invoices are issued for every paid order.", ""]
    for number in range(1, happy + 1):
        lines.extend([
            "  @happy-path",
            f"  Scenario: Issue invoice variant {number:02d}",
            '    Given a "clerk" user exists',
            f'    When the "clerk" user performs "issue invoice {number}"',
            f'    Then the "clerk" user sees "Invoice {number} issued"',
            "",
        ])
    for number in range(1, validation + 1):
        lines.extend([
            "  @validation",
            f"  Scenario: Reject malformed amount variant {number:02d}",
            '    Given a "clerk" user exists',
            f'    When the "clerk" user submits "x{number}" as the "amount"',
            '    Then the operation is rejected with message "Amount must be numeric"',
            "",
        ])
    return "\n".join(lines)


class ProjectBuilder:
    """Temporary project directory with helpers for writing and listing files."""

    def __init__(self, root: Path):
        self.root = root

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def exists(self, relative: str) -> bool:
        return (self.root / relative).exists()

    def files(self) -> Dict[str, str]:
        """Every file under the root, relative path -> content."""
        return {
            path.relative_to(self.root).as_posix(): path.read_text(encoding="utf-8")
            for path in sorted(self.root.rglob("*"))
            if path.is_file()
        }

    def fs(self) -> LocalFileSystem:
        return LocalFileSystem(self.root)


class ScriptedChannel(InteractionChannel):
    """
    Interaction channel returning canned answers.

    Every question is recorded in `questions` as (kind, question, options).
    `choices` holds option indexes per choose() call; an exhausted script
    selects nothing.
    """

    def __init__(
        self,
        clarify_answers: Optional[List[str]] = None,
        choices: Optional[List[List[int]]] = None,
        confirms: Optional[List[bool]] = None
    ):
        self.clarify_answers = list(clarify_answers or [])
        self.choices = list(choices or [])
        self.confirms = list(confirms or [])
        self.questions: List[Tuple[str, str, List[str]]] = []

    def clarify(self, question: str) -> str:
        self.questions.append(("clarify", question, []))
        return self.clarify_answers.pop(0) if self.clarify_answers else ""

    def choose(self, question: str, options: List[str], multi_select: bool = False) -> List[str]:
        self.questions.append(("choose", question, list(options)))
        picks = self.choices.pop(0) if self.choices else []
        return [options[i] for i in picks]

    def confirm(self, question: str, default: bool = False) -> bool:
        self.questions.append(("confirm", question, []))
        return self.confirms.pop(0) if self.confirms else default

    def asked(self, kind: str) -> List[Tuple[str, str, List[str]]]:
        return [q for q in self.questions if q[0] == kind]


@pytest.fixture
def project(tmp_path) -> ProjectBuilder:
    """Empty project directory."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def channel() -> ScriptedChannel:
    return ScriptedChannel()


@pytest.fixture
def password_reset_project(project) -> ProjectBuilder:
    """Project whose knowledge base documents UC-ab12-003 and nothing else."""
    project.write("prd/specs/uc-ab12-003-password-reset/requirements.md", PASSWORD_RESET_REQUIREMENTS)
    return project


@pytest.fixture
def export_project(project) -> ProjectBuilder:
    """Project with two unrelated features that both mention exporting."""
    project.write("prd/specs/order-export/requirements.md", ORDER_EXPORT_REQUIREMENTS)
    project.write("prd/specs/report-export/requirements.md", REPORT_EXPORT_REQUIREMENTS)
    return project


@pytest.fixture
def invoices_project(project) -> ProjectBuilder:
    """Project with one unsplit feature holding exactly 15 scenarios."""
    project.write("bdd/features/billing/invoices.feature", invoice_feature(happy=8, validation=7))
    return project
