"""
Admin CLI for a local SchemaHub registry.

This tool drives the registry facade directly (no network), against the
SQLite file named by --storage or SCHEMAHUB_STORAGE_PATH:
- register / check / test: submit a schema for a subject
- subjects / versions / get / get-id: inspect the registry
- delete-version / delete-subject: soft-delete versions
- config get|set|delete: global or per-subject compatibility

Usage:
    schemahub --storage registry.db register --subject orders --type value --file order.avsc
    schemahub --storage registry.db test --subject orders --type value --file order_v2.avsc
    schemahub --storage registry.db config set FULL --subject orders --type value

Invariants:
    - Results are printed to stdout as JSON (sorted keys)
    - Registry errors print a JSON error object to stderr and exit 1
    - An incompatible schema makes `test` exit 1
    - Usage errors, including an unreadable --file, exit 2 through argparse

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripting
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..errors import RegistryError
from ..registry import SchemaRegistry
from ..schema.types import LATEST

logger = logging.getLogger(__name__)


class RegistryCLI:
    """Command implementations over a SchemaRegistry.

    Each method returns a JSON-serializable result.

    Example:
        >>> cli = RegistryCLI(SchemaRegistry())
        >>> cli.register("orders", "value", '"string"')
        {'id': 1}
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def register(self, subject: str, schema_type: str, schema: str) -> Dict[str, Any]:
        return {"id": self.registry.register(subject, schema_type, schema)}

    def subjects(self) -> List[str]:
        return sorted(self.registry.list_subjects())

    def versions(self, subject: str, schema_type: str) -> List[int]:
        return self.registry.list_versions(subject, schema_type)

    def get(self, subject: str, schema_type: str, version: str = LATEST) -> Dict[str, Any]:
        return self.registry.get_schema(subject, schema_type, version).to_dict()

    def get_id(self, schema_id: str) -> Dict[str, Any]:
        return self.registry.get_schema_by_id(schema_id).to_dict()

    def delete_version(self, subject: str, schema_type: str, version: str) -> int:
        return self.registry.delete_version(subject, schema_type, version)

    def delete_subject(self, subject: str, schema_type: str) -> List[int]:
        return self.registry.delete_subject(subject, schema_type)

    def check(self, subject: str, schema_type: str, schema: str) -> Dict[str, Any]:
        return self.registry.check_schema(subject, schema_type, schema).to_dict()

    def test(
        self,
        subject: str,
        schema_type: str,
        schema: str,
        version: str = LATEST,
    ) -> Dict[str, Any]:
        compatible = self.registry.test_compatibility(subject, schema_type, schema, version)
        return {"is_compatible": compatible}

    def config(
        self,
        action: str,
        mode: Optional[str] = None,
        subject: Optional[str] = None,
        schema_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Get, set or delete global or per-subject compatibility."""
        scoped = subject is not None or schema_type is not None
        if action == "get":
            if scoped:
                mode = self.registry.get_subject_config(subject, schema_type)
            else:
                mode = self.registry.get_global_config()
        elif action == "set":
            if scoped:
                mode = self.registry.set_subject_config(subject, schema_type, mode)
            else:
                mode = self.registry.set_global_config(mode)
        else:
            mode = self.registry.delete_subject_config(subject, schema_type)
        return {"compatibility": mode}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schemahub", description="SchemaHub registry tool")
    parser.add_argument("--storage", help="SQLite registry file (default: SCHEMAHUB_STORAGE_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def scoped(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--subject", "-s", required=True, help="Subject name")
        sub.add_argument("--type", "-t", required=True, choices=["key", "value"], dest="schema_type")
        return sub

    def with_schema(sub: argparse.ArgumentParser) -> None:
        source = sub.add_mutually_exclusive_group(required=True)
        source.add_argument("--file", "-f", help="Path to schema file")
        source.add_argument("--schema", help="Schema text")

    with_schema(scoped("register", "Register a schema"))
    with_schema(scoped("check", "Check whether a schema is registered"))
    test_parser = scoped("test", "Test compatibility without registering")
    with_schema(test_parser)
    test_parser.add_argument("--version", "-v", default=LATEST, help="Version to test against")

    subparsers.add_parser("subjects", help="List subjects")
    scoped("versions", "List versions of a subject")
    scoped("get", "Fetch a subject version").add_argument(
        "--version", "-v", default=LATEST, help="Version number or 'latest'"
    )
    subparsers.add_parser("get-id", help="Fetch a schema by id").add_argument(
        "--id", required=True, dest="schema_id", help="Global schema id"
    )
    scoped("delete-version", "Delete one version").add_argument(
        "--version", "-v", required=True, help="Version number or 'latest'"
    )
    scoped("delete-subject", "Delete all versions of a subject")

    config_parser = subparsers.add_parser("config", help="Compatibility configuration")
    config_parser.add_argument("action", choices=["get", "set", "delete"])
    config_parser.add_argument("mode", nargs="?", help="Mode for 'set' (e.g. BACKWARD)")
    config_parser.add_argument("--subject", "-s", help="Subject name (omit for global)")
    config_parser.add_argument(
        "--type", "-t", choices=["key", "value"], dest="schema_type", help="Schema type"
    )
    return parser


def dispatch(cli: RegistryCLI, args: argparse.Namespace) -> Any:
    """Run the parsed command and return its result."""
    command = args.command
    if command == "register":
        return cli.register(args.subject, args.schema_type, args.schema)
    if command == "check":
        return cli.check(args.subject, args.schema_type, args.schema)
    if command == "test":
        return cli.test(args.subject, args.schema_type, args.schema, args.version)
    if command == "subjects":
        return cli.subjects()
    if command == "versions":
        return cli.versions(args.subject, args.schema_type)
    if command == "get":
        return cli.get(args.subject, args.schema_type, args.version)
    if command == "get-id":
        return cli.get_id(args.schema_id)
    if command == "delete-version":
        return cli.delete_version(args.subject, args.schema_type, args.version)
    if command == "delete-subject":
        return cli.delete_subject(args.subject, args.schema_type)
    return cli.config(args.action, args.mode, args.subject, args.schema_type)


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run one command, print the result.

    Returns:
        Process exit code
    """
    from ..main import create_registry, setup_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "config":
        if args.action == "set" and not args.mode:
            parser.error("config set requires a mode")
        if args.action == "delete" and not (args.subject and args.schema_type):
            parser.error("config delete requires --subject and --type")
        if bool(args.subject) != bool(args.schema_type):
            parser.error("--subject and --type must be given together")

    if getattr(args, "file", None):
        try:
            args.schema = Path(args.file).read_text(encoding="utf-8")
        except OSError as e:
            parser.error(f"cannot read schema file '{args.file}': {e.strerror or e}")

    overrides: Dict[str, Any] = {}
    if args.storage:
        overrides["storage_path"] = args.storage
    settings = Settings(**overrides)
    setup_logging(settings)

    try:
        cli = RegistryCLI(create_registry(settings))
        result = dispatch(cli, args)
    except RegistryError as e:
        logger.debug(f"Command '{args.command}' failed: {e.code}")
        print(json.dumps(e.to_dict(), sort_keys=True, default=str), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, sort_keys=True))
    if isinstance(result, dict) and result.get("is_compatible") is False:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
