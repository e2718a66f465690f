"""Tests for feature file parsing and rendering in both text formats."""

from conftest import ORDER_HISTORY_ANNOTATED
from scenario_engine.gherkin import (
    ExamplesTable,
    FeatureDocument,
    ScenarioBlock,
    Step,
    parse_feature,
    render_feature,
    render_scenario_block,
    split_table_row,
)
from scenario_engine.schemas import ConstructKind, TextFormat

PLAIN_FEATURE = """\
@auth @login
Feature: Login
  Registered users sign in with email and password.

  Background:
    Given a "customer" user exists
    And a "session" record exists

  @happy-path @smoke
  Scenario: Sign in with valid credentials
    When the "customer" user performs "sign in"
    Then the "customer" user sees "Welcome back"
    But the "customer" user sees "1 new message"

  # Comments are ignored
  @validation
  Scenario Outline: Reject invalid credentials
    When the "customer" user submits "<value>" as the "<field>"
    Then the operation is rejected with message "<message>"

    Examples:
      | field    | value | message           |
      | email    |       | Email is required |
      | password | a\\|b  | Wrong password    |
"""


class TestParsePlain:
    """Tests for parsing plain Gherkin."""

    def test_header_and_background(self):
        """Test title, feature tags, description and background are recovered."""
        doc = parse_feature(PLAIN_FEATURE)

        assert doc.title == "Login"
        assert doc.tags == ["@auth", "@login"]
        assert doc.summary == "Registered users sign in with email and password."
        assert [step.text for step in doc.background] == [
            'a "customer" user exists',
            'a "session" record exists',
        ]
        assert all(step.keyword == "Given" for step in doc.background)

    def test_description_starting_with_step_keyword(self):
        """Test a description line beginning with When stays description text."""
        doc = parse_feature(
            "Feature: Lockout\n"
            '  When the customer fails login 3 times, then "Account locked" is shown.\n'
            "\n"
            "  Scenario: Lock after failures\n"
            '    When the "customer" user performs "fail login"\n'
        )

        assert doc.summary == 'When the customer fails login 3 times, then "Account locked" is shown.'
        assert doc.background == []
        assert [step.text for step in doc.scenarios[0].steps] == ['the "customer" user performs "fail login"']

    def test_scenarios_with_tags_and_lines(self):
        """Test scenario names, tags, kinds and line numbers."""
        doc = parse_feature(PLAIN_FEATURE)

        assert [block.name for block in doc.scenarios] == [
            "Sign in with valid credentials",
            "Reject invalid credentials",
        ]
        assert doc.scenarios[0].tags == ["@happy-path", "@smoke"]
        assert doc.scenarios[0].kind is ConstructKind.SCENARIO
        assert doc.scenarios[0].line == 10
        assert doc.scenarios[1].kind is ConstructKind.OUTLINE

    def test_and_but_resolve_to_previous_keyword(self):
        """Test And/But continuation steps take the preceding keyword."""
        doc = parse_feature(PLAIN_FEATURE)

        keywords = [step.keyword for step in doc.scenarios[0].steps]
        assert keywords == ["When", "Then", "Then"]

    def test_examples_table_with_escaped_pipe(self):
        """Test examples rows are parsed and escaped pipes kept as cell content."""
        outline = parse_feature(PLAIN_FEATURE).scenarios[1]

        assert outline.examples.headers == ["field", "value", "message"]
        assert outline.example_count == 2
        assert outline.examples.rows[0] == ["email", "", "Email is required"]
        assert outline.examples.rows[1][1] == "a|b"

    def test_untagged_scenario_gets_placeholder_tag(self):
        """Test a scenario without tags still yields a tagged catalog reference."""
        doc = parse_feature("Feature: Bare\n  Scenario: Nothing special\n    Given a \"user\" user exists\n")

        assert doc.scenarios[0].to_ref().tags == ["@untagged"]

    def test_no_feature_header(self):
        """Test a file without a Feature line yields an empty title."""
        assert parse_feature("just some text\n").title == ""


class TestParseAnnotated:
    """Tests for parsing the annotated Markdown format."""

    def test_headings_tags_and_steps(self):
        """Test Markdown headings, inline-code tags and bold keywords are understood."""
        doc = parse_feature(ORDER_HISTORY_ANNOTATED, TextFormat.ANNOTATED)

        assert doc.title == "Order History"
        assert doc.tags == ["@orders", "@order-history"]
        assert doc.summary == "Customers can review their past orders."
        block = doc.scenarios[0]
        assert block.name == "View past orders"
        assert block.tags == ["@happy-path", "@smoke"]
        assert [step.keyword for step in block.steps] == ["Given", "When", "Then"]
        assert block.steps[2].text == 'the "customer" user sees "3 orders"'

    def test_markdown_table_separator_skipped(self):
        """Test the header separator row of a Markdown table is not an example row."""
        text = (
            "# Feature: Coupons\n\n"
            "## Scenario Outline: Apply coupon\n\n"
            "`@validation`\n\n"
            '- **When** the "shopper" user submits "<code>" as the "coupon"\n\n'
            "### Examples\n\n"
            "| code |\n"
            "| ---- |\n"
            "| XYZ  |\n"
        )
        block = parse_feature(text, TextFormat.ANNOTATED).scenarios[0]

        assert block.kind is ConstructKind.OUTLINE
        assert block.examples.headers == ["code"]
        assert block.examples.rows == [["XYZ"]]


class TestRender:
    """Tests for rendering documents and appended blocks."""

    def _document(self):
        return FeatureDocument(
            title="Checkout",
            tags=["@orders", "@checkout"],
            description=["Shoppers pay for their basket."],
            background=[Step("Given", 'a "shopper" user exists')],
            scenarios=[
                ScenarioBlock(
                    name="Pay by card",
                    tags=["@happy-path"],
                    steps=[
                        Step("When", 'the "shopper" user performs "pay by card"'),
                        Step("Then", 'the "shopper" user sees "Order placed"'),
                        Step("Then", 'the "shopper" user sees "Receipt sent"'),
                    ],
                ),
                ScenarioBlock(
                    name="Reject bad card numbers",
                    tags=["@validation"],
                    kind=ConstructKind.OUTLINE,
                    steps=[Step("When", 'the "shopper" user submits "<value>" as the "card"')],
                    examples=ExamplesTable(headers=["value"], rows=[["1234"], ["abcd"]]),
                ),
            ],
        )

    def test_plain_layout(self):
        """Test plain rendering uses indentation, And for repeats and an Examples block."""
        text = render_feature(self._document(), TextFormat.PLAIN)

        assert text.startswith("@orders @checkout\nFeature: Checkout\n  Shoppers pay for their basket.\n")
        assert "  Background:\n    Given a \"shopper\" user exists\n" in text
        assert "    And the \"shopper\" user sees \"Receipt sent\"\n" in text
        assert "  Scenario Outline: Reject bad card numbers\n" in text
        assert "    Examples:\n      | value |\n      | 1234  |\n" in text
        assert text.endswith("\n")

    def test_annotated_layout(self):
        """Test annotated rendering uses headings, inline-code tags and bold keywords."""
        text = render_feature(self._document(), TextFormat.ANNOTATED)

        assert text.startswith("# Feature: Checkout\n\n`@orders` `@checkout`\n")
        assert "## Background\n\n- **Given** a \"shopper\" user exists\n" in text
        assert "## Scenario: Pay by card\n\n`@happy-path`\n" in text
        assert "- **And** the \"shopper\" user sees \"Receipt sent\"\n" in text
        assert "### Examples\n\n| value |\n| ----- |\n| 1234  |\n" in text

    def test_rendered_documents_parse_back(self):
        """Test both formats parse back into the same scenarios."""
        original = self._document()
        for text_format in TextFormat:
            doc = parse_feature(render_feature(original, text_format), text_format)
            assert doc.title == original.title
            assert doc.tags == original.tags
            assert [b.name for b in doc.scenarios] == ["Pay by card", "Reject bad card numbers"]
            assert [b.tags for b in doc.scenarios] == [["@happy-path"], ["@validation"]]
            assert doc.scenarios[1].examples.rows == [["1234"], ["abcd"]]
            assert [s.text for s in doc.background] == ['a "shopper" user exists']

    def test_appended_block_starts_with_blank_line(self):
        """Test an appended block is separated from the previous content."""
        block = ScenarioBlock(name="Pay twice", tags=["@edge-case"], steps=[Step("When", "x")])

        assert render_scenario_block(block, TextFormat.PLAIN).startswith("\n  @edge-case\n  Scenario: Pay twice\n")
        assert render_scenario_block(block, TextFormat.ANNOTATED).startswith("\n## Scenario: Pay twice\n")


class TestTableRows:
    """Tests for table row splitting."""

    def test_split_strips_cells(self):
        """Test cells are trimmed and outer pipes dropped."""
        assert split_table_row("|  a | b  |") == ["a", "b"]

    def test_escaped_pipe_stays_in_cell(self):
        """Test an escaped pipe does not split the cell."""
        assert split_table_row("| a\\|b | c |") == ["a|b", "c"]
