"""
Centralized Argument Configuration for the scenario-engine CLI

Provides a registry of command-line arguments with consistent names, types,
help text and validation across every subcommand.

Usage:
    from scenario_engine.argument_config import EngineArgumentParser, StandardArguments

    parser = EngineArgumentParser(description="BDD scenario generation")
    parser.add_command(
        "rebuild",
        help="Rebuild both catalogs",
        standard_args=[StandardArguments.ROOT, StandardArguments.CONFIG],
    )
    args = parser.parse()
"""

import argparse
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from scenario_engine import __version__


class StandardArguments(Enum):
    """
    Registry of standard arguments shared by the subcommands.

    Each enum value maps to a tuple of (flags, kwargs) for argparse.add_argument().
    """

    # Project selection
    ROOT = (
        ["--root"],
        {
            "type": str,
            "default": ".",
            "help": "Project root holding the artifact tree and knowledge base (default: current directory)",
            "metavar": "PATH",
        }
    )

    # Override document
    CONFIG = (
        ["--config"],
        {
            "type": str,
            "default": None,
            "help": "Path to the override document (default: <root>/.scenario-engine.yaml)",
            "metavar": "PATH",
        }
    )

    # Verbose output
    VERBOSE = (
        ["-v", "--verbose"],
        {
            "action": "store_true",
            "help": "Enable verbose output with debug logging",
        }
    )

    # Interactive mode control (negated flag - default is interactive)
    NO_INTERACTIVE = (
        ["--no-interactive"],
        {
            "action": "store_true",
            "help": "Fail instead of asking questions (clarification, disambiguation)",
        }
    )

    # Dry run mode
    DRY_RUN = (
        ["--dry-run"],
        {
            "action": "store_true",
            "help": "Show the files that would be written without writing them",
        }
    )

    # Audit trail
    AUDIT = (
        ["--audit"],
        {
            "action": "store_true",
            "help": "Write a JSON audit record under .scenario-engine/audit/",
        }
    )

    # Explicit scenario requests
    SCENARIO = (
        ["--scenario"],
        {
            "action": "append",
            "default": [],
            "help": "Request a scenario by name (repeatable)",
            "metavar": "NAME",
            "dest": "scenarios",
        }
    )


class ArgumentValidator:
    """
    Validation logic for standardized arguments.
    """

    @staticmethod
    def validate_root(root: str) -> Path:
        """
        Validate the project root.

        Raises:
            ValueError: If the root is not an existing directory
        """
        path = Path(root)
        if not path.exists():
            raise ValueError(f"Project root not found: {root}")
        if not path.is_dir():
            raise ValueError(f"Project root is not a directory: {root}")
        return path

    @staticmethod
    def validate_config_path(config_path: str, root: Path) -> Path:
        """
        Validate an explicit override document path (relative paths resolve against root).

        Raises:
            ValueError: If the document doesn't exist or is not a file
        """
        path = Path(config_path)
        if not path.is_absolute():
            path = root / path
        if not path.exists():
            raise ValueError(
                f"Configuration file not found: {config_path}\n"
                "Omit --config to use the defaults."
            )
        if not path.is_file():
            raise ValueError(
                f"Configuration path is not a file: {config_path}\n"
                "Expected a YAML configuration file."
            )
        return path

    @staticmethod
    def validate_scenario_names(names: List[str]) -> List[str]:
        """
        Strip requested scenario names and drop case-insensitive repeats.

        Raises:
            ValueError: If a requested name is blank
        """
        cleaned: List[str] = []
        seen = set()
        for name in names:
            stripped = name.strip()
            if not stripped:
                raise ValueError("--scenario requires a non-empty name")
            if stripped.casefold() not in seen:
                seen.add(stripped.casefold())
                cleaned.append(stripped)
        return cleaned


class EngineArgumentParser:
    """
    Argument parser with one subparser per engine command.

    Example:
        parser = EngineArgumentParser(description="BDD scenario generation")
        generate = parser.add_command(
            "generate",
            help="Generate scenarios for a feature reference",
            standard_args=[StandardArguments.ROOT, StandardArguments.DRY_RUN],
        )
        generate.add_argument("reference", nargs="?", default="")
        args = parser.parse()
    """

    def __init__(self, description: str, prog: str = "scenario-engine"):
        """
        Initialize the parser.

        Args:
            description: Description for the top-level parser
            prog: Program name shown in usage lines
        """
        self.parser = argparse.ArgumentParser(
            prog=prog,
            description=description,
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        self.parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
        self.subparsers = self.parser.add_subparsers(dest="command", metavar="COMMAND")
        self.subparsers.required = True
        self.command_args: Dict[str, List[StandardArguments]] = {}

    def add_command(
        self,
        name: str,
        help: str,
        standard_args: Optional[List[StandardArguments]] = None
    ) -> argparse.ArgumentParser:
        """
        Add a subcommand with a set of standard arguments.

        Returns:
            The subparser, for command-specific arguments
        """
        subparser = self.subparsers.add_parser(
            name,
            help=help,
            description=help,
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        self.command_args[name] = list(standard_args or [])
        for std_arg in self.command_args[name]:
            flags, kwargs = std_arg.value
            subparser.add_argument(*flags, **kwargs)
        return subparser

    def parse(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse arguments and apply validation.

        Raises:
            SystemExit: With status 2 if parsing or validation fails
        """
        parsed_args = self.parser.parse_args(args)
        try:
            self._validate_arguments(parsed_args)
        except ValueError as e:
            self.parser.error(str(e))
        return parsed_args

    def _validate_arguments(self, args: argparse.Namespace) -> None:
        standard_args = self.command_args.get(args.command, [])

        if StandardArguments.ROOT in standard_args:
            args.root = ArgumentValidator.validate_root(args.root)

        if StandardArguments.CONFIG in standard_args and args.config:
            args.config = ArgumentValidator.validate_config_path(args.config, Path(args.root))

        if StandardArguments.SCENARIO in standard_args:
            args.scenarios = ArgumentValidator.validate_scenario_names(args.scenarios)
