"""
Unit tests for Avro schema canonicalization.

Tests cover:
- Fingerprint stability across surface syntax
- Attributes that must survive normalization
- Rejection of invalid and degenerate schemas
"""

import json

import pytest

from services.schemahub_server.errors import SchemaParseError
from services.schemahub_server.schema.canonical import (
    AvroCanonicalizer,
    generate_fingerprint,
)


@pytest.fixture
def canonicalizer():
    return AvroCanonicalizer()


def order_schema(**extra):
    schema = {
        "type": "record",
        "name": "Order",
        "namespace": "com.shop",
        "fields": [
            {"name": "id", "type": "long"},
            {"name": "note", "type": "string", "default": ""},
        ],
    }
    schema.update(extra)
    return schema


class TestFingerprint:
    """Tests for canonical form and fingerprint stability."""

    def test_whitespace_and_key_order_ignored(self, canonicalizer):
        """Formatting differences canonicalize identically."""
        compact = json.dumps(order_schema(), separators=(",", ":"))
        pretty = json.dumps(order_schema(), indent=4, sort_keys=True)

        a = canonicalizer.canonicalize(compact)
        b = canonicalizer.canonicalize(pretty)

        assert a.fingerprint == b.fingerprint
        assert a.canonical_text == b.canonical_text

    def test_doc_ignored(self, canonicalizer):
        """Documentation does not affect identity."""
        a = canonicalizer.canonicalize(order_schema())
        b = canonicalizer.canonicalize(order_schema(doc="An order placed by a customer"))
        assert a.fingerprint == b.fingerprint

    def test_namespace_forms_equivalent(self, canonicalizer):
        """A namespace attribute and a dotted name are the same schema."""
        dotted = order_schema(name="com.shop.Order")
        del dotted["namespace"]

        a = canonicalizer.canonicalize(order_schema())
        b = canonicalizer.canonicalize(dotted)

        assert a.fingerprint == b.fingerprint
        assert a.canonical["name"] == "com.shop.Order"

    def test_primitive_object_collapses(self, canonicalizer):
        """{"type": "string"} and "string" are the same schema."""
        a = canonicalizer.canonicalize('{"type": "string"}')
        b = canonicalizer.canonicalize('"string"')
        assert a.canonical_text == '"string"'
        assert a.fingerprint == b.fingerprint

    def test_defaults_kept(self, canonicalizer):
        """Different defaults are different schemas."""
        other = order_schema()
        other["fields"][1]["default"] = "n/a"

        a = canonicalizer.canonicalize(order_schema())
        b = canonicalizer.canonicalize(other)

        assert a.fingerprint != b.fingerprint
        assert b.canonical["fields"][1]["default"] == "n/a"

    def test_logical_type_kept(self, canonicalizer):
        """Logical types on primitives survive normalization."""
        result = canonicalizer.canonicalize('{"type": "int", "logicalType": "date"}')
        assert result.canonical == {"type": "int", "logicalType": "date"}

    def test_fingerprint_format(self, canonicalizer):
        """Fingerprints are sha256 of the canonical text."""
        result = canonicalizer.canonicalize(order_schema())
        assert result.fingerprint.startswith("sha256:")
        assert result.fingerprint == generate_fingerprint(result.canonical_text)

    def test_raw_body_preserved(self, canonicalizer):
        """The submitted text is kept verbatim."""
        text = '{ "type" : "string" }'
        assert canonicalizer.canonicalize(text).raw_body == text

    def test_dict_input_matches_text(self, canonicalizer):
        """Pre-decoded input canonicalizes like its JSON text."""
        a = canonicalizer.canonicalize(order_schema())
        b = canonicalizer.canonicalize(json.dumps(order_schema()))
        assert a.fingerprint == b.fingerprint

    def test_named_reference_resolved(self, canonicalizer):
        """A second use of a named type becomes a full-name reference."""
        schema = {
            "type": "record",
            "name": "Shipment",
            "namespace": "com.shop",
            "fields": [
                {
                    "name": "origin",
                    "type": {"type": "enum", "name": "Region", "symbols": ["EU", "US"]},
                },
                {"name": "destination", "type": "Region"},
            ],
        }
        result = canonicalizer.canonicalize(schema)

        assert result.canonical["fields"][0]["type"]["name"] == "com.shop.Region"
        assert result.canonical["fields"][1]["type"] == "com.shop.Region"


class TestInvalidSchemas:
    """Tests for rejected schemas."""

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_text(self, canonicalizer, text):
        """Empty text is rejected."""
        with pytest.raises(SchemaParseError, match="empty"):
            canonicalizer.canonicalize(text)

    def test_not_json(self, canonicalizer):
        """Non-JSON text is rejected with the decoder diagnostic."""
        with pytest.raises(SchemaParseError, match="not valid JSON"):
            canonicalizer.canonicalize("{type: record")

    def test_unknown_type(self, canonicalizer):
        """Unknown type names are rejected."""
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize('{"type": "strin"}')

    def test_unknown_named_reference(self, canonicalizer):
        """References to undefined named types are rejected."""
        schema = {
            "type": "record",
            "name": "Order",
            "fields": [{"name": "customer", "type": "Customer"}],
        }
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize(schema)

    def test_record_without_fields(self, canonicalizer):
        """Degenerate records are rejected."""
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize({"type": "record", "name": "Empty", "fields": []})

    def test_record_missing_fields_key(self, canonicalizer):
        """Records must declare fields."""
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize({"type": "record", "name": "Empty"})

    @pytest.mark.parametrize("schema", ["[]", []])
    def test_empty_union(self, canonicalizer, schema):
        """A union with no branches is rejected as text and as decoded JSON."""
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize(schema)

    def test_nested_empty_union(self, canonicalizer):
        """Empty unions are rejected inside records too."""
        schema = {"type": "record", "name": "Order", "fields": [{"name": "x", "type": []}]}
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize(schema)

    def test_duplicate_field_names(self, canonicalizer):
        """A record cannot declare the same field twice."""
        schema = {
            "type": "record",
            "name": "Order",
            "fields": [{"name": "x", "type": "int"}, {"name": "x", "type": "string"}],
        }
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize(schema)

    def test_duplicate_enum_symbols(self, canonicalizer):
        """An enum cannot repeat a symbol."""
        with pytest.raises(SchemaParseError):
            canonicalizer.canonicalize({"type": "enum", "name": "Color", "symbols": ["RED", "RED"]})

    def test_unsupported_input_type(self, canonicalizer):
        """Only text and decoded JSON are accepted."""
        with pytest.raises(SchemaParseError, match="got int"):
            canonicalizer.canonicalize(42)

    def test_diagnostic_attached(self, canonicalizer):
        """The error carries the parser diagnostic."""
        with pytest.raises(SchemaParseError) as exc_info:
            canonicalizer.canonicalize("not json")
        assert exc_info.value.diagnostic
        assert exc_info.value.code == "SCHEMA_PARSE_ERROR"
