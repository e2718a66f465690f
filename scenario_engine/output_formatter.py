"""
Output formatting for engine results.

Provides standardized Rich renderables for:
- Generation reports (feature, scenarios, steps, notices)
- Detected conventions
- Catalog drift
- Rebuilt catalog summaries
"""

from typing import List

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from scenario_engine.catalog import CatalogIndex
from scenario_engine.console import COLORS
from scenario_engine.schemas import CatalogDiff, Convention, GenerationReport

NOTICE_STYLES = {
    "duplicate": COLORS["warning"],
    "drift": COLORS["info"],
    "convention_conflict": COLORS["warning"],
    "identifier_not_found": COLORS["warning"],
}


def _title(text: str) -> str:
    return f"[bold {COLORS['accent1']}]{text}[/bold {COLORS['accent1']}]"


def _table(*columns: str) -> Table:
    table = Table(
        show_header=True,
        header_style=f"bold {COLORS['primary']}",
        border_style=COLORS["accent1"],
        show_lines=False,
        padding=(0, 1)
    )
    for column in columns:
        table.add_column(column)
    return table


class OutputFormatter:
    """
    Standardized output formatting for the CLI.

    Every formatter returns a renderable; printing is left to the caller.
    """

    @staticmethod
    def generation_report(report: GenerationReport) -> Panel:
        """
        Format a generation report.

        Args:
            report: Outcome of one generate invocation

        Returns:
            Rich Panel with the feature, scenario and step sections
        """
        parts: List = []

        header = Text()
        header.append("Reference: ", style=COLORS["secondary"])
        header.append(report.reference or "-", style=COLORS["primary"])
        header.append(f"  ({report.resolution})", style="dim")
        if report.feature is not None:
            header.append("\nFeature: ", style=COLORS["secondary"])
            header.append(f"{report.feature.domain}/{report.feature.name}", style=f"bold {COLORS['accent2']}")
            header.append(f"  {report.feature.path}", style="dim")
            header.append("\nScenarios: ", style=COLORS["secondary"])
            header.append(str(report.feature.scenario_count), style=COLORS["primary"])
            if report.split:
                header.append("  (split)", style=COLORS["warning"])
        if report.convention is not None:
            header.append("\nConvention: ", style=COLORS["secondary"])
            header.append(
                f"{report.convention.text_format.value} / {report.convention.step_language.value}",
                style=COLORS["primary"],
            )
        parts.append(header)

        if report.created_scenarios:
            table = _table("New scenario", "Tags")
            tags = {}
            if report.feature is not None:
                tags = {ref.name: " ".join(ref.tags) for ref in report.feature.scenarios}
            for name in report.created_scenarios:
                table.add_row(name, tags.get(name, "-"))
            parts.extend([Text(), table])

        if report.created_steps or report.reused_steps:
            table = _table("Step pattern", "Status")
            for pattern in report.created_steps:
                table.add_row(pattern, Text("created", style=COLORS["success"]))
            for pattern in report.reused_steps:
                table.add_row(pattern, Text("reused", style=COLORS["secondary"]))
            parts.extend([Text(), table])

        if report.notices:
            parts.append(Text())
            for notice in report.notices:
                line = Text()
                line.append(f"[{notice.kind}] ", style=NOTICE_STYLES.get(notice.kind, COLORS["info"]))
                line.append(notice.message, style=COLORS["primary"])
                parts.append(line)

        footer = Text("\n")
        verb = "Would write" if report.dry_run else "Wrote"
        footer.append(f"{verb} {len(report.written_files)} files", style=f"bold {COLORS['accent1']}")
        if report.deleted_files:
            footer.append(f", removed {len(report.deleted_files)}", style=COLORS["warning"])
        parts.append(footer)

        title = "Generation Report (dry run)" if report.dry_run else "Generation Report"
        return Panel(Group(*parts), title=_title(title), border_style=COLORS["accent1"], padding=(0, 1))

    @staticmethod
    def convention(convention: Convention) -> Panel:
        """Format a detected convention with its file counts and warnings."""
        table = _table("Kind", "Value", "Files")
        table.add_row(
            "Text format",
            convention.text_format.value,
            ", ".join(f"{k}: {v}" for k, v in sorted(convention.feature_counts.items())) or "none",
        )
        table.add_row(
            "Step language",
            convention.step_language.value,
            ", ".join(f"{k}: {v}" for k, v in sorted(convention.step_counts.items())) or "none",
        )
        parts: List = [table]
        for warning in convention.warnings:
            parts.append(Text(f"⚠ {warning}", style=COLORS["warning"]))
        return Panel(Group(*parts), title=_title("Conventions"), border_style=COLORS["accent1"], padding=(0, 1))

    @staticmethod
    def catalog_diff(diff: CatalogDiff) -> Panel:
        """Format catalog drift (or its absence)."""
        if not diff.has_drift:
            return Panel(
                Text("Catalogs match the artifact tree", style=COLORS["success"]),
                title=_title("Catalog Check"),
                border_style=COLORS["accent1"],
            )
        table = _table("Entry", "Problem")
        for entry in diff.stale_entries:
            table.add_row(entry, Text("stale", style=COLORS["warning"]))
        for entry in diff.missing_entries:
            table.add_row(entry, Text("missing", style=COLORS["error"]))
        return Panel(table, title=_title("Catalog Drift"), border_style=COLORS["warning"], padding=(0, 1))

    @staticmethod
    def catalog_summary(index: CatalogIndex) -> Panel:
        """Format the domains and counts of a rebuilt catalog."""
        table = _table("Domain", "Features", "Scenarios")
        for domain in index.domains:
            entries = index.lookup(domain)
            table.add_row(domain, str(len(entries)), str(sum(entry.scenario_count for entry in entries)))
        footer = Text(f"\n{len(index.steps)} step definitions", style=COLORS["tertiary"])
        return Panel(Group(table, footer), title=_title("Catalogs Rebuilt"), border_style=COLORS["accent1"], padding=(0, 1))
