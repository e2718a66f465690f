"""Tests for convention detection."""

from conftest import COMMON_STEPS_TS, ORDER_HISTORY_ANNOTATED
from scenario_engine.config import EngineConfig
from scenario_engine.conventions import ConventionDetector, majority
from scenario_engine.schemas import (
    FORMAT_PRIORITY,
    LANGUAGE_PRIORITY,
    StepLanguage,
    TextFormat,
)

PLAIN = "Feature: Plain\n  @happy-path\n  Scenario: One\n    When x\n"
GO_STEPS = 'package steps\n\nfunc init() {\n\tregisterStep("Given", `^x$`, func() error {\n\t\treturn nil\n\t})\n}\n'


def detect(project, config=None):
    return ConventionDetector(project.fs(), config or EngineConfig()).detect()


class TestMajority:
    """Tests for the majority vote."""

    def test_highest_count_wins(self):
        """Test the value with most files wins."""
        assert majority({"plain": 1, "annotated": 3}, FORMAT_PRIORITY) is TextFormat.ANNOTATED

    def test_tie_goes_to_priority(self):
        """Test ties resolve to the earlier priority entry."""
        assert majority({"go": 2, "typescript": 2}, LANGUAGE_PRIORITY) is StepLanguage.TYPESCRIPT
        assert majority({"plain": 1, "annotated": 1}, FORMAT_PRIORITY) is TextFormat.PLAIN

    def test_no_counts(self):
        """Test an empty tree has no majority."""
        assert majority({}, LANGUAGE_PRIORITY) is None


class TestConventionDetector:
    """Tests for detection over an artifact tree."""

    def test_empty_tree_defaults(self, project):
        """Test an empty tree uses plain Gherkin and the configured language."""
        convention = detect(project, EngineConfig(default_step_language=StepLanguage.GO))

        assert convention.text_format is TextFormat.PLAIN
        assert convention.step_language is StepLanguage.GO
        assert convention.warnings == []

    def test_consistent_tree(self, project):
        """Test a consistent tree is detected without warnings."""
        project.write("bdd/features/orders/history.feature.md", ORDER_HISTORY_ANNOTATED)
        project.write("bdd/steps/common_steps.ts", COMMON_STEPS_TS)

        convention = detect(project)

        assert convention.text_format is TextFormat.ANNOTATED
        assert convention.step_language is StepLanguage.TYPESCRIPT
        assert convention.feature_counts == {"annotated": 1}
        assert not convention.is_mixed

    def test_mixed_tree_warns_and_uses_majority(self, project):
        """Test mixed formats and languages produce warnings naming the counts."""
        project.write("bdd/features/a.feature", PLAIN)
        project.write("bdd/features/b.feature", PLAIN)
        project.write("bdd/features/c.feature.md", ORDER_HISTORY_ANNOTATED)
        project.write("bdd/steps/common_steps.ts", COMMON_STEPS_TS)
        project.write("bdd/steps/common_steps.go", GO_STEPS)
        project.write("bdd/steps/api_steps.go", GO_STEPS)

        convention = detect(project)

        assert convention.text_format is TextFormat.PLAIN
        assert convention.step_language is StepLanguage.GO
        assert len(convention.warnings) == 2
        assert "annotated: 1, plain: 2" in convention.warnings[0]
        assert "go: 2, typescript: 1" in convention.warnings[1]

    def test_override_never_beats_existing_files(self, project):
        """Test the configured default language yields to existing step files."""
        project.write("bdd/steps/common_steps.ts", COMMON_STEPS_TS)

        convention = detect(project, EngineConfig(default_step_language=StepLanguage.PYTHON))

        assert convention.step_language is StepLanguage.TYPESCRIPT

    def test_catalog_and_support_files_ignored(self, project):
        """Test catalogs, package markers and the Go registry are not counted."""
        project.write("bdd/features/INDEX.md", "# Features Index\n")
        project.write("bdd/steps/INDEX.md", "# Steps Index\n")
        project.write("bdd/steps/__init__.py", "")
        project.write("bdd/steps/registry.go", "package steps\n")

        convention = detect(project)

        assert convention.feature_counts == {}
        assert convention.step_counts == {}

    def test_detection_does_not_read_file_contents(self, project):
        """Test detection counts files by extension without opening them."""
        project.write("bdd/features/orders/history.feature", PLAIN)
        binary = project.root / "bdd/steps/common_steps.ts"
        binary.parent.mkdir(parents=True)
        binary.write_bytes(b"\xff\xfe\x00")

        convention = detect(project)

        assert convention.text_format is TextFormat.PLAIN
        assert convention.step_language is StepLanguage.TYPESCRIPT
