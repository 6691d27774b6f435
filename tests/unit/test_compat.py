"""
Unit tests for the compatibility engine.

Tests cover:
- Field addition and removal in each direction
- Type promotion, enum, union, fixed and name rules
- Transitive versus latest-only checking
- Recursive schemas
"""

import pytest

from services.schemahub_server.errors import CompatibilityError
from services.schemahub_server.schema.canonical import AvroCanonicalizer
from services.schemahub_server.schema.compat import (
    IncompatibilityKind,
    check_compatibility,
    check_reader_writer,
    is_compatible,
    validate_compatibility,
)
from services.schemahub_server.schema.types import CompatibilityMode


def canon(schema):
    return AvroCanonicalizer().canonicalize(schema).canonical


def user(*fields, name="User"):
    return canon({"type": "record", "name": name, "namespace": "com.example", "fields": list(fields)})


ID = {"name": "id", "type": "long"}
EMAIL = {"name": "email", "type": "string"}
EMAIL_WITH_DEFAULT = {"name": "email", "type": "string", "default": ""}


def kinds(violations):
    return {v.kind for v in violations}


class TestFieldChanges:
    """Adding and removing record fields."""

    def test_add_field_with_default(self):
        """Adding an optional field is compatible in every mode."""
        old = user(ID)
        new = user(ID, EMAIL_WITH_DEFAULT)

        for mode in CompatibilityMode:
            assert is_compatible(new, [old], mode), mode

    def test_add_field_without_default_breaks_backward(self):
        """A new reader cannot fill a required field old data lacks."""
        violations = check_compatibility(user(ID, EMAIL), [user(ID)], CompatibilityMode.BACKWARD)

        assert kinds(violations) == {IncompatibilityKind.READER_FIELD_MISSING_DEFAULT_VALUE}
        assert violations[0].path == "/fields/email"
        assert violations[0].direction == "BACKWARD"

    def test_add_field_without_default_breaks_forward(self):
        """An old reader would silently drop a new required field."""
        violations = check_compatibility(user(ID, EMAIL), [user(ID)], CompatibilityMode.FORWARD)

        assert kinds(violations) == {IncompatibilityKind.WRITER_FIELD_REMOVED_WITHOUT_DEFAULT}
        assert violations[0].direction == "FORWARD"

    def test_remove_required_field_breaks_backward(self):
        """Dropping a field that had no default is rejected under BACKWARD."""
        violations = check_compatibility(user(ID), [user(ID, EMAIL)], CompatibilityMode.BACKWARD)

        assert kinds(violations) == {IncompatibilityKind.WRITER_FIELD_REMOVED_WITHOUT_DEFAULT}
        assert violations[0].path == "/fields/email"

    def test_remove_field_with_default(self):
        """Dropping a field that had a default is allowed both ways."""
        old = user(ID, EMAIL_WITH_DEFAULT)
        new = user(ID)

        assert is_compatible(new, [old], CompatibilityMode.FULL)

    def test_full_reports_both_directions(self):
        """FULL collects violations from each direction."""
        violations = check_compatibility(user(ID, EMAIL), [user(ID)], CompatibilityMode.FULL)
        assert {v.direction for v in violations} == {"BACKWARD", "FORWARD"}

    def test_field_alias_matches_renamed_field(self):
        """A reader field alias matches the old writer field name."""
        old = user(ID, EMAIL)
        new = user(ID, {"name": "email_address", "type": "string", "aliases": ["email"]})

        assert check_reader_writer(reader=new, writer=old) == []


class TestTypeRules:
    """Primitive, enum, union, fixed and named type rules."""

    def test_promotion_int_to_long(self):
        """int -> long reads backward but not forward."""
        old = user({"name": "count", "type": "int"})
        new = user({"name": "count", "type": "long"})

        assert is_compatible(new, [old], CompatibilityMode.BACKWARD)
        violations = check_compatibility(new, [old], CompatibilityMode.FORWARD)
        assert kinds(violations) == {IncompatibilityKind.TYPE_MISMATCH}
        assert violations[0].path == "/fields/count/type"

    def test_incompatible_type_change(self):
        """string -> int is a type mismatch."""
        old = user({"name": "count", "type": "string"})
        new = user({"name": "count", "type": "int"})

        violations = check_compatibility(new, [old], CompatibilityMode.BACKWARD)
        assert kinds(violations) == {IncompatibilityKind.TYPE_MISMATCH}

    def test_string_bytes_interchangeable(self):
        """string and bytes promote to each other."""
        assert check_reader_writer("bytes", "string") == []
        assert check_reader_writer("string", "bytes") == []

    def test_enum_symbol_added(self):
        """A new symbol is readable by the new reader only."""
        old = canon({"type": "enum", "name": "Color", "symbols": ["RED", "GREEN"]})
        new = canon({"type": "enum", "name": "Color", "symbols": ["RED", "GREEN", "BLUE"]})

        assert is_compatible(new, [old], CompatibilityMode.BACKWARD)
        violations = check_compatibility(new, [old], CompatibilityMode.FORWARD)
        assert kinds(violations) == {IncompatibilityKind.MISSING_ENUM_SYMBOLS}

    def test_enum_default_absorbs_unknown_symbols(self):
        """A reader enum default covers symbols it does not know."""
        reader = canon({"type": "enum", "name": "Color", "symbols": ["RED", "OTHER"], "default": "OTHER"})
        writer = canon({"type": "enum", "name": "Color", "symbols": ["RED", "BLUE"]})

        assert check_reader_writer(reader, writer) == []

    def test_union_widening(self):
        """string -> [null, string] reads old data but old readers can't read null."""
        old = user({"name": "nick", "type": "string"})
        new = user({"name": "nick", "type": ["null", "string"], "default": None})

        assert is_compatible(new, [old], CompatibilityMode.BACKWARD)
        assert not is_compatible(new, [old], CompatibilityMode.FORWARD)

    def test_reader_union_missing_branch(self):
        """A writer type with no matching reader branch is reported."""
        violations = check_reader_writer(["null", "string"], "int")
        assert kinds(violations) == {IncompatibilityKind.MISSING_UNION_BRANCH}

    def test_fixed_size_mismatch(self):
        """Fixed types must keep their size."""
        reader = canon({"type": "fixed", "name": "Hash", "size": 32})
        writer = canon({"type": "fixed", "name": "Hash", "size": 16})

        violations = check_reader_writer(reader, writer)
        assert kinds(violations) == {IncompatibilityKind.FIXED_SIZE_MISMATCH}
        assert violations[0].path == "/size"

    def test_record_rename_requires_alias(self):
        """Renamed records need an alias for the old name."""
        old = user(ID, name="User")
        renamed = user(ID, name="Account")
        aliased = canon(
            {
                "type": "record",
                "name": "Account",
                "namespace": "com.example",
                "aliases": ["User"],
                "fields": [ID],
            }
        )

        assert kinds(check_reader_writer(renamed, old)) == {IncompatibilityKind.NAME_MISMATCH}
        assert check_reader_writer(aliased, old) == []

    def test_array_and_map_recurse(self):
        """Container element types are checked with promotion."""
        assert check_reader_writer(canon({"type": "array", "items": "long"}), canon({"type": "array", "items": "int"})) == []
        violations = check_reader_writer(
            canon({"type": "map", "values": "int"}),
            canon({"type": "map", "values": "string"}),
        )
        assert violations[0].path == "/values"

    def test_recursive_schema(self):
        """Self-referencing records terminate and match themselves."""
        node = canon(
            {
                "type": "record",
                "name": "Node",
                "fields": [
                    {"name": "value", "type": "int"},
                    {"name": "next", "type": ["null", "Node"], "default": None},
                ],
            }
        )
        assert check_reader_writer(node, node) == []


class TestModes:
    """Mode dispatch and reference selection."""

    def test_none_always_compatible(self):
        """NONE accepts anything."""
        assert check_compatibility(canon('"int"'), [canon('"string"')], CompatibilityMode.NONE) == []

    @pytest.mark.parametrize("mode", list(CompatibilityMode))
    def test_no_references(self, mode):
        """The first version of a subject is always compatible."""
        assert check_compatibility(canon('"int"'), [], mode) == []

    def test_transitive_checks_all_versions(self):
        """Only the transitive mode sees the incompatibility with v1."""
        v1 = user(ID, {"name": "age", "type": "int"})
        v2 = user(ID, {"name": "age", "type": "int", "default": 0})
        v3 = user(ID)

        assert is_compatible(v3, [v1, v2], CompatibilityMode.BACKWARD)

        violations = check_compatibility(v3, [v1, v2], CompatibilityMode.BACKWARD_TRANSITIVE)
        assert kinds(violations) == {IncompatibilityKind.WRITER_FIELD_REMOVED_WITHOUT_DEFAULT}
        assert violations[0].reference_index == 0

    def test_validate_raises(self):
        """validate_compatibility raises with every violation attached."""
        with pytest.raises(CompatibilityError) as exc_info:
            validate_compatibility(user(ID), [user(ID, EMAIL)], CompatibilityMode.BACKWARD, scope="users-value")

        error = exc_info.value
        assert error.mode is CompatibilityMode.BACKWARD
        assert error.code == "INCOMPATIBLE_SCHEMA"
        assert len(error.incompatibilities) == 1
        assert error.details["scope"] == "users-value"
        assert error.details["violations"][0]["kind"] == "WRITER_FIELD_REMOVED_WITHOUT_DEFAULT"

    def test_validate_passes_silently(self):
        """validate_compatibility returns None when compatible."""
        assert validate_compatibility(user(ID, EMAIL_WITH_DEFAULT), [user(ID)], CompatibilityMode.FULL) is None
