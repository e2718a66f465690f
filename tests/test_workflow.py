"""
Tests for the generate pipeline and the catalog maintenance operations.

Every test builds a throwaway project under tmp_path and drives
ScenarioGenerationWorkflow the way the CLI does.
"""

import json

import pytest

from conftest import (
    COMMON_STEPS_TS,
    ORDER_HISTORY_ANNOTATED,
    ScriptedChannel,
    invoice_feature,
)
from scenario_engine.base import AUDIT_DIR
from scenario_engine.catalog import CatalogIndex
from scenario_engine.error_handling import ArtifactIOError, ErrorType, InputAmbiguityError, NoMatchError
from scenario_engine.gherkin import parse_feature
from scenario_engine.schemas import StepLanguage, TextFormat
from scenario_engine.text_utils import normalize_scenario_name
from scenario_engine.workflow import (
    ScenarioGenerationWorkflow,
    check_catalogs,
    detect_conventions,
    rebuild_catalogs,
)

FEATURE_PATH = "bdd/features/auth/password-reset.feature"


def generate(project, config, reference, channel=None, **kwargs):
    workflow = ScenarioGenerationWorkflow(reference, project.root, config, channel or ScriptedChannel(), **kwargs)
    return workflow.generate()


class TestScaffoldFromIdentifier:
    """Tests for generating a brand new feature from a requirement identifier."""

    def test_creates_feature_in_inferred_domain(self, password_reset_project, config):
        """Test the feature file lands under the front-matter domain."""
        report = generate(password_reset_project, config, "UC-ab12-003")

        assert report.resolution == "ExplicitIdentifier"
        assert password_reset_project.exists(FEATURE_PATH)
        assert report.feature is not None
        assert report.feature.domain == "auth"
        assert report.feature.name == "password-reset"
        assert report.feature.title == "Password Reset"

    def test_scenarios_cover_criteria_rules_and_edge_cases(self, password_reset_project, config):
        """Test one scenario per criterion and edge case plus one outline for the rules."""
        report = generate(password_reset_project, config, "UC-ab12-003")

        doc = parse_feature(password_reset_project.read(FEATURE_PATH))
        assert len(doc.scenarios) == 4
        assert report.created_scenarios == [block.name for block in doc.scenarios]

        outline = next(block for block in doc.scenarios if block.kind.value == "outline")
        assert outline.name == "Reject invalid password reset input"
        assert outline.tags == ["@validation"]
        assert outline.examples.headers == ["field", "value", "message"]
        assert outline.example_count == 2
        assert ["email", "not-an-email", "Email must be a valid email address"] in outline.examples.rows
        assert ["password", "aaaaaaa", "Password must be at least 8 characters"] in outline.examples.rows

        edge = [block for block in doc.scenarios if "@edge-case" in block.tags]
        assert [block.name for block in edge] == ["Reset link expired after 24 hours"]

    def test_every_scenario_is_tagged(self, password_reset_project, config):
        """Test every scenario carries at least one classification tag."""
        generate(password_reset_project, config, "UC-ab12-003")

        doc = parse_feature(password_reset_project.read(FEATURE_PATH))
        assert doc.tags == ["@auth", "@password-reset"]
        assert all(block.tags for block in doc.scenarios)
        assert "@smoke" in doc.scenarios[0].tags

    def test_shared_setup_becomes_background(self, password_reset_project, config):
        """Test the shared actor and entity setup is hoisted into a background."""
        generate(password_reset_project, config, "UC-ab12-003")

        doc = parse_feature(password_reset_project.read(FEATURE_PATH))
        assert [step.text for step in doc.background] == [
            'a "customer" user exists',
            'a "reset token" record exists',
        ]
        assert all(block.steps[0].keyword == "When" for block in doc.scenarios)

    def test_step_stubs_written_per_category(self, password_reset_project, config):
        """Test stubs go to the shared, persistence, external-call and domain step files."""
        report = generate(password_reset_project, config, "UC-ab12-003")

        for name in ("common_steps.py", "db_steps.py", "api_steps.py", "auth_steps.py"):
            assert password_reset_project.exists(f"bdd/steps/{name}")
        common = password_reset_project.read("bdd/steps/common_steps.py")
        assert "from behave import given, then, when" in common
        assert "@given('a \"{role}\" user exists')" in common
        assert "raise NotImplementedError" in common
        assert "#   role (string): role of the acting user" in common
        assert "a {string} user exists" in report.created_steps
        assert report.reused_steps == []

    def test_every_step_line_binds_to_a_catalogued_pattern(self, password_reset_project, config):
        """Test each generated step text matches a pattern in the steps catalog."""
        from scenario_engine.step_stubs import matches

        generate(password_reset_project, config, "UC-ab12-003")

        index = CatalogIndex.load(password_reset_project.fs(), config)
        patterns = [step.pattern for step in index.steps]
        doc = parse_feature(password_reset_project.read(FEATURE_PATH))
        step_texts = [step.text for step in doc.background]
        step_texts += [step.text for block in doc.scenarios for step in block.steps]
        for text in step_texts:
            assert any(matches(pattern, text) for pattern in patterns), text

    def test_catalogs_written_and_consistent(self, password_reset_project, config):
        """Test both catalogs exist after generation and show no drift."""
        report = generate(password_reset_project, config, "UC-ab12-003")

        assert password_reset_project.exists("bdd/features/INDEX.md")
        assert password_reset_project.exists("bdd/steps/INDEX.md")
        assert report.written_files[-2:] == ["bdd/features/INDEX.md", "bdd/steps/INDEX.md"]
        assert not check_catalogs(password_reset_project.root, config).has_drift

        features_catalog = password_reset_project.read("bdd/features/INDEX.md")
        assert "## auth" in features_catalog
        assert "### password-reset" in features_catalog
        assert "- File: `auth/password-reset.feature`" in features_catalog

    def test_report_evidence_covers_every_step(self, password_reset_project, config):
        """Test the report carries evidence for all seven pipeline steps."""
        report = generate(password_reset_project, config, "UC-ab12-003")

        assert sorted(report.evidence) == [
            "1-resolve", "2-explore", "3-conventions", "4-catalog",
            "5-generate", "6-split", "7-synchronize",
        ]
        assert report.evidence["2-explore"]["identifier"] == "UC-ab12-003"
        assert report.evidence["6-split"]["split"] is False

    def test_summary_from_first_criterion(self, project, config):
        """Test a requirement without an intro paragraph still yields a one-sentence summary."""
        project.write(
            "prd/specs/uc-ab12-004-account-lockout/requirements.md",
            "---\nid: UC-ab12-004\ndomain: auth\n---\n"
            "# UC-ab12-004: Account Lockout\n\n"
            "## Acceptance Criteria\n\n"
            '- When the customer fails login 3 times, then "Account locked" is shown\n',
        )

        report = generate(project, config, "UC-ab12-004")

        expected = 'When the customer fails login 3 times, then "Account locked" is shown.'
        assert report.feature.summary == expected
        doc = parse_feature(project.read("bdd/features/auth/account-lockout.feature"))
        assert doc.description == [expected]
        assert f"- Summary: {expected}" in project.read("bdd/features/INDEX.md")

    def test_unreadable_requirement_document_is_skipped(self, password_reset_project, config):
        """Test a non-UTF-8 document elsewhere in the knowledge base does not stop generation."""
        broken = password_reset_project.root / "prd/specs/zz-broken/requirements.md"
        broken.parent.mkdir(parents=True)
        broken.write_bytes(b"\xff\xfe\x00broken")

        report = generate(password_reset_project, config, "UC-ab12-003")

        assert report.feature.name == "password-reset"
        assert password_reset_project.exists(FEATURE_PATH)

    def test_unknown_identifier_without_knowledge_match(self, password_reset_project, config):
        """Test an identifier no document carries is explored as free text and fails when nothing matches."""
        with pytest.raises(NoMatchError):
            generate(password_reset_project, config, "UC-zz99-999")


class TestIdempotence:
    """Tests for re-running generation and catalog rebuilds."""

    def test_second_run_creates_nothing(self, password_reset_project, config):
        """Test a repeated generation reports duplicates and leaves the tree unchanged."""
        generate(password_reset_project, config, "UC-ab12-003")
        before = password_reset_project.files()

        report = generate(password_reset_project, config, "UC-ab12-003")

        assert report.created_scenarios == []
        assert report.created_steps == []
        assert report.written_files == []
        assert password_reset_project.files() == before
        duplicates = report.notices_of(ErrorType.DUPLICATE.value)
        assert len(duplicates) == 4
        assert all("already exists at bdd/features/auth/password-reset.feature:" in n.message for n in duplicates)

    def test_requested_existing_name_is_reported_with_location(self, password_reset_project, config):
        """Test requesting an existing scenario by feature name reports its file and line."""
        generate(password_reset_project, config, "UC-ab12-003")
        existing = parse_feature(password_reset_project.read(FEATURE_PATH)).scenarios[0]

        report = generate(
            password_reset_project, config, "password-reset",
            requested_scenarios=[existing.name.upper()],
        )

        assert report.resolution == "ExistingFeature"
        assert report.created_scenarios == []
        assert any(
            n.path == f"{FEATURE_PATH}:{existing.line}"
            for n in report.notices_of(ErrorType.DUPLICATE.value)
        )

    def test_new_requested_scenario_is_appended(self, password_reset_project, config):
        """Test a genuinely new scenario is appended without duplicating the others."""
        generate(password_reset_project, config, "UC-ab12-003")

        report = generate(
            password_reset_project, config, "password-reset",
            requested_scenarios=["Reset requested for an unknown account"],
        )

        assert report.created_scenarios == ["Reset requested for an unknown account"]
        doc = parse_feature(password_reset_project.read(FEATURE_PATH))
        names = [normalize_scenario_name(block.name) for block in doc.scenarios]
        assert len(names) == 5
        assert len(names) == len(set(names))
        # The existing background already covers the actor setup
        appended = doc.scenarios[-1]
        assert appended.steps[0].keyword == "When"

    def test_rebuild_is_byte_identical(self, password_reset_project, config):
        """Test two rebuilds with no tree change write identical catalogs."""
        generate(password_reset_project, config, "UC-ab12-003")
        generated = (
            password_reset_project.read("bdd/features/INDEX.md"),
            password_reset_project.read("bdd/steps/INDEX.md"),
        )

        rebuild_catalogs(password_reset_project.root, config)
        first = (
            password_reset_project.read("bdd/features/INDEX.md"),
            password_reset_project.read("bdd/steps/INDEX.md"),
        )
        rebuild_catalogs(password_reset_project.root, config)
        second = (
            password_reset_project.read("bdd/features/INDEX.md"),
            password_reset_project.read("bdd/steps/INDEX.md"),
        )

        assert first == second
        assert generated == first


class TestSplit:
    """Tests for promoting an over-large feature into a directory."""

    def test_sixteenth_scenario_triggers_split(self, invoices_project, config):
        """Test exceeding the threshold splits the feature by classification tag."""
        report = generate(
            invoices_project, config, "invoices",
            requested_scenarios=["Pay an invoice twice"],
        )

        assert report.resolution == "ExistingFeature"
        assert report.split is True
        assert not invoices_project.exists("bdd/features/billing/invoices.feature")
        happy = parse_feature(invoices_project.read("bdd/features/billing/invoices/happy-path.feature"))
        validation = parse_feature(invoices_project.read("bdd/features/billing/invoices/validation.feature"))
        assert len(happy.scenarios) == 9
        assert len(validation.scenarios) == 7
        assert happy.tags == ["@billing"]
        assert happy.title == "Invoices: Happy Path"

        assert report.feature.path == "billing/invoices/"
        assert report.feature.scenario_count == 16
        assert report.feature.sub_files == [
            "billing/invoices/happy-path.feature",
            "billing/invoices/validation.feature",
        ]
        assert report.deleted_files == ["bdd/features/billing/invoices.feature"]

    def test_split_catalog_entry(self, invoices_project, config):
        """Test the features catalog lists the directory and its sub-files."""
        generate(invoices_project, config, "invoices", requested_scenarios=["Pay an invoice twice"])

        catalog = invoices_project.read("bdd/features/INDEX.md")
        assert "- Directory: `billing/invoices/`" in catalog
        assert "  - `billing/invoices/happy-path.feature`" in catalog
        assert "- File: `billing/invoices.feature`" not in catalog
        assert not check_catalogs(invoices_project.root, config).has_drift

    def test_split_is_terminal(self, invoices_project, config):
        """Test later scenarios are routed into the matching sub-file."""
        generate(invoices_project, config, "invoices", requested_scenarios=["Pay an invoice twice"])

        report = generate(
            invoices_project, config, "billing/invoices",
            requested_scenarios=["Reject a negative total"],
        )

        assert report.split is True
        assert report.deleted_files == []
        validation = parse_feature(invoices_project.read("bdd/features/billing/invoices/validation.feature"))
        assert validation.scenarios[-1].name == "Reject a negative total"
        assert report.feature.scenario_count == 17

    def test_at_threshold_no_split(self, project, config):
        """Test exactly fifteen scenarios stay in one file."""
        project.write("bdd/features/billing/invoices.feature", invoice_feature(happy=7, validation=7))

        report = generate(project, config, "invoices", requested_scenarios=["Pay an invoice twice"])

        assert report.split is False
        assert report.feature.scenario_count == 15
        assert project.exists("bdd/features/billing/invoices.feature")

    def test_uniform_scenarios_still_split_in_two(self, project, config):
        """Test scenarios sharing tag, setup and action verb are split by name keywords."""
        lines = ["@billing", "Feature: Invoices", ""]
        for number in range(1, 16):
            lines.extend([
                "  @happy-path",
                f"  Scenario: Issue invoice {number}",
                '    Given a "user" user exists',
                f'    When the "user" user performs "issue invoice {number}"',
                f'    Then the "user" user sees "Invoice {number} issued"',
                "",
            ])
        project.write("bdd/features/billing/invoices.feature", "\n".join(lines))

        report = generate(project, config, "invoices", requested_scenarios=["Issue invoice for archive"])

        assert report.split is True
        assert report.feature.sub_files == [
            "billing/invoices/archive.feature",
            "billing/invoices/issue-invoice.feature",
        ]
        archive = parse_feature(project.read("bdd/features/billing/invoices/archive.feature"))
        assert [block.name for block in archive.scenarios] == ["Issue invoice for archive"]
        assert archive.title == "Invoices: Archive"
        assert not check_catalogs(project.root, config).has_drift


class TestExistingFeatureContext:
    """Tests for scenarios appended to features without knowledge documents."""

    def test_appended_scenario_uses_feature_actor(self, project, config):
        """Test the actor named by the feature's own setup is reused."""
        project.write("bdd/features/billing/invoices.feature", invoice_feature(happy=7, validation=7))

        generate(project, config, "invoices", requested_scenarios=["Issue invoice for archive"])

        doc = parse_feature(project.read("bdd/features/billing/invoices.feature"))
        appended = doc.scenarios[-1]
        assert appended.name == "Issue invoice for archive"
        assert appended.steps[0].text == 'a "clerk" user exists'
        assert '"user" user' not in project.read("bdd/features/billing/invoices.feature")

    def test_background_setup_is_not_repeated(self, project, config):
        """Test an appended scenario skips the givens the background already covers."""
        project.write(
            "bdd/features/billing/refunds.feature",
            "@billing\n"
            "Feature: Refunds\n"
            "\n"
            "  Background:\n"
            '    Given a "clerk" user exists\n'
            '    And a "refund" record exists\n'
            "\n"
            "  @happy-path\n"
            "  Scenario: Refund a paid invoice\n"
            '    When the "clerk" user performs "refund invoice"\n'
            '    Then the "clerk" user sees "Refund issued"\n',
        )

        generate(project, config, "refunds", requested_scenarios=["Refund a partial payment"])

        doc = parse_feature(project.read("bdd/features/billing/refunds.feature"))
        appended = doc.scenarios[-1]
        assert appended.name == "Refund a partial payment"
        assert appended.steps[0].keyword == "When"
        assert appended.steps[0].text == 'the "clerk" user performs "refund a partial payment"'


class TestConventions:
    """Tests for following the detected conventions."""

    def test_annotated_typescript_tree_is_followed(self, password_reset_project, config):
        """Test a tree in annotated format with TypeScript steps keeps that convention."""
        password_reset_project.write("bdd/features/orders/order-history.feature.md", ORDER_HISTORY_ANNOTATED)
        password_reset_project.write("bdd/steps/common_steps.ts", COMMON_STEPS_TS)
        before = detect_conventions(password_reset_project.root, config)

        report = generate(password_reset_project, config, "UC-ab12-003")

        after = detect_conventions(password_reset_project.root, config)
        assert before.text_format is after.text_format is TextFormat.ANNOTATED
        assert before.step_language is after.step_language is StepLanguage.TYPESCRIPT
        assert password_reset_project.exists("bdd/features/auth/password-reset.feature.md")
        assert password_reset_project.exists("bdd/steps/api_steps.ts")
        assert not password_reset_project.exists("bdd/steps/api_steps.py")
        assert "a {string} user exists" in report.reused_steps
        assert "a {string} user exists" not in report.created_steps

        content = password_reset_project.read("bdd/features/auth/password-reset.feature.md")
        assert content.startswith("# Feature: Password Reset")
        assert "- **When**" in content
        common = password_reset_project.read("bdd/steps/common_steps.ts")
        assert common.count("Given('a {string} user exists'") == 1
        assert "Then('the operation is rejected with message {string}'" in common

    def test_missing_catalogs_rebuilt_with_drift_notice(self, password_reset_project, config):
        """Test pre-existing artifacts without catalogs trigger a rebuild notice."""
        password_reset_project.write("bdd/features/orders/order-history.feature.md", ORDER_HISTORY_ANNOTATED)

        report = generate(password_reset_project, config, "UC-ab12-003")

        assert len(report.notices_of(ErrorType.DRIFT.value)) == 1
        assert not check_catalogs(password_reset_project.root, config).has_drift

    def test_mixed_tree_reports_conflict(self, password_reset_project, config):
        """Test a tree with both formats warns and uses the majority."""
        password_reset_project.write("bdd/features/orders/order-history.feature.md", ORDER_HISTORY_ANNOTATED)
        password_reset_project.write("bdd/features/billing/invoices.feature", invoice_feature(1, 1))
        password_reset_project.write("bdd/features/billing/refunds.feature", invoice_feature(1, 0).replace("Invoices", "Refunds"))

        report = generate(password_reset_project, config, "UC-ab12-003")

        assert report.notices_of(ErrorType.CONVENTION_CONFLICT.value)
        assert report.convention.text_format is TextFormat.PLAIN
        assert password_reset_project.exists(FEATURE_PATH)


class TestNearDuplicates:
    """Tests for near-duplicate scenario names."""

    @pytest.fixture
    def orders_project(self, project):
        project.write(
            "bdd/features/orders/export.feature",
            "@orders\n"
            "Feature: Export\n"
            "\n"
            "  @happy-path\n"
            "  Scenario: Export orders as CSV file\n"
            '    Given a "manager" user exists\n'
            '    When the "manager" user performs "export"\n'
            '    Then the "manager" user sees "orders.csv"\n',
        )
        return project

    def test_declined_near_duplicate_is_skipped(self, orders_project, config):
        """Test a declined confirmation skips the near-duplicate scenario."""
        channel = ScriptedChannel(confirms=[False])

        report = generate(orders_project, config, "export", channel, requested_scenarios=["Export orders as a CSV file"])

        assert len(channel.asked("confirm")) == 1
        assert report.created_scenarios == []
        assert report.notices_of(ErrorType.DUPLICATE.value)

    def test_confirmed_near_duplicate_is_created(self, orders_project, config):
        """Test a confirmed near-duplicate is generated."""
        channel = ScriptedChannel(confirms=[True])

        report = generate(orders_project, config, "export", channel, requested_scenarios=["Export orders as a CSV file"])

        assert report.created_scenarios == ["Export orders as a CSV file"]


class TestDisambiguation:
    """Tests for ambiguous free-form references."""

    def test_candidates_presented_and_none_selected(self, export_project, config):
        """Test two unrelated matches are offered and an empty selection aborts."""
        channel = ScriptedChannel(choices=[[]])

        with pytest.raises(InputAmbiguityError):
            generate(export_project, config, "export", channel)

        asked = channel.asked("choose")
        assert len(asked) == 1
        options = asked[0][2]
        assert len(options) == 2
        assert "Order Export [orders]" in options[0]
        assert "Report Export [reporting]" in options[1]
        assert not export_project.exists("bdd")

    def test_selected_candidate_is_generated(self, export_project, config):
        """Test the selected candidate drives domain, name and scenarios."""
        channel = ScriptedChannel(choices=[[0]])

        report = generate(export_project, config, "export", channel)

        assert report.resolution == "FreeForm"
        assert report.feature.domain == "orders"
        assert report.feature.name == "order-export"
        content = export_project.read("bdd/features/orders/order-export.feature")
        assert 'Then the "user" user sees "orders.csv"' in content
        assert not export_project.exists("bdd/features/reporting")

    def test_non_interactive_ambiguity_fails(self, export_project, config):
        """Test ambiguity without a human fails with nothing written."""
        from scenario_engine.interaction import NonInteractiveChannel

        with pytest.raises(InputAmbiguityError):
            generate(export_project, config, "export", NonInteractiveChannel())
        assert not export_project.exists("bdd")

    def test_no_match_writes_nothing(self, export_project, config):
        """Test an unmatched reference raises NoMatchError."""
        before = export_project.files()

        with pytest.raises(NoMatchError):
            generate(export_project, config, "quantum teleportation")
        assert export_project.files() == before


class TestEmptyInput:
    """Tests for the clarification path."""

    def test_empty_reference_asks_once_and_fails(self, password_reset_project, config):
        """Test an unanswered clarification fails without touching anything."""
        channel = ScriptedChannel(clarify_answers=[""])
        before = password_reset_project.files()

        with pytest.raises(InputAmbiguityError):
            generate(password_reset_project, config, "   ", channel, audit=True)

        assert len(channel.asked("clarify")) == 1
        assert password_reset_project.files() == before
        assert not (password_reset_project.root / AUDIT_DIR).exists()

    def test_clarified_reference_is_used(self, password_reset_project, config):
        """Test the clarification answer becomes the reference."""
        channel = ScriptedChannel(clarify_answers=["UC-ab12-003"])

        report = generate(password_reset_project, config, "", channel)

        assert report.reference == "UC-ab12-003"
        assert password_reset_project.exists(FEATURE_PATH)


class TestDryRunAndAudit:
    """Tests for dry runs and the audit record."""

    def test_dry_run_writes_nothing(self, password_reset_project, config):
        """Test a dry run lists the files it would write without writing them."""
        before = password_reset_project.files()

        report = generate(password_reset_project, config, "UC-ab12-003", dry_run=True)

        assert report.dry_run is True
        assert FEATURE_PATH in report.written_files
        assert "bdd/features/INDEX.md" in report.written_files
        assert password_reset_project.files() == before

    def test_audit_record_written_outside_artifact_tree(self, password_reset_project, config):
        """Test the audit record lands under the audit directory with every step."""
        generate(password_reset_project, config, "UC-ab12-003", audit=True)

        records = list((password_reset_project.root / AUDIT_DIR).glob("generate-*.json"))
        assert len(records) == 1
        data = json.loads(records[0].read_text(encoding="utf-8"))
        assert data["status"] == "completed"
        completed = [e for e in data["audit_log"] if e["event_type"] == "step_completed"]
        assert len(completed) == 7

    def test_lock_held_aborts_without_writes(self, password_reset_project, config):
        """Test a held artifact lock fails the write with an I/O error."""
        password_reset_project.write("bdd/.scenario-engine.lock", "4242")

        with pytest.raises(ArtifactIOError):
            generate(password_reset_project, config, "UC-ab12-003")

        assert not password_reset_project.exists(FEATURE_PATH)
        assert not password_reset_project.exists("bdd/features/INDEX.md")
