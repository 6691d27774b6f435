"""
Unit tests for the subject-version index.

Tests cover:
- Version assignment and duplicate detection
- Latest resolution and lookups
- Soft deletion and version number retention
"""

import pytest

from services.schemahub_server.errors import (
    AlreadyExistsError,
    SubjectNotFoundError,
    VersionNotFoundError,
)
from services.schemahub_server.schema.types import LATEST, SchemaType, ScopeKey
from services.schemahub_server.store.version_index import SubjectVersionIndex

ORDERS = ScopeKey("orders", SchemaType.VALUE)
ORDERS_KEY = ScopeKey("orders", SchemaType.KEY)


@pytest.fixture
def index():
    index = SubjectVersionIndex()
    for schema_id in (10, 11, 12):
        index.append_version(ORDERS, schema_id)
    return index


class TestAppend:
    """Tests for append_version."""

    def test_versions_are_sequential(self, index):
        """Versions start at 1 and increase by one."""
        assert index.list_versions(ORDERS) == [1, 2, 3]
        assert index.append_version(ORDERS, 13) == 4

    def test_scopes_are_independent(self, index):
        """Key and value scopes of one subject number separately."""
        assert index.append_version(ORDERS_KEY, 10) == 1

    def test_duplicate_live_schema(self, index):
        """A schema already live in the scope cannot be appended again."""
        with pytest.raises(AlreadyExistsError) as exc_info:
            index.append_version(ORDERS, 11)

        assert exc_info.value.existing.version == 2
        assert index.list_versions(ORDERS) == [1, 2, 3]

    def test_reappend_after_soft_delete(self, index):
        """A schema whose version was deleted can be appended as a new version."""
        index.soft_delete_version(ORDERS, 2)
        assert index.append_version(ORDERS, 11) == 4


class TestLookups:
    """Tests for version lookups."""

    def test_get_latest(self, index):
        """LATEST resolves to the highest live version."""
        assert index.get_version(ORDERS, LATEST).schema_id == 12
        index.soft_delete_version(ORDERS, 3)
        assert index.get_version(ORDERS, LATEST).version == 2

    def test_get_by_number(self, index):
        """Explicit versions resolve to their row."""
        assert index.get_version(ORDERS, 1).schema_id == 10

    def test_get_missing(self, index):
        """Unknown versions raise VersionNotFoundError."""
        with pytest.raises(VersionNotFoundError):
            index.get_version(ORDERS, 9)
        with pytest.raises(VersionNotFoundError):
            index.get_version(ORDERS_KEY, LATEST)

    def test_list_versions_unknown_subject(self, index):
        """Listing an empty scope raises SubjectNotFoundError."""
        with pytest.raises(SubjectNotFoundError) as exc_info:
            index.list_versions(ORDERS_KEY)
        assert exc_info.value.scope == "orders-key"

    def test_find_by_schema_id(self, index):
        """Live rows are found by schema id, deleted ones are not."""
        assert index.find_version_by_schema_id(ORDERS, 11).version == 2
        index.soft_delete_version(ORDERS, 2)
        assert index.find_version_by_schema_id(ORDERS, 11) is None

    def test_list_subjects(self, index):
        """Only scopes with live versions are listed."""
        index.append_version(ORDERS_KEY, 10)
        assert index.list_subjects() == {ORDERS, ORDERS_KEY}

        index.delete_subject(ORDERS_KEY)
        assert index.list_subjects() == {ORDERS}


class TestDeletion:
    """Tests for soft deletion."""

    def test_soft_delete_version(self, index):
        """Deleted versions disappear from listings and lookups."""
        assert index.soft_delete_version(ORDERS, 2) == 2
        assert index.list_versions(ORDERS) == [1, 3]
        with pytest.raises(VersionNotFoundError):
            index.get_version(ORDERS, 2)

    def test_soft_delete_twice(self, index):
        """Deleting an already-deleted version fails."""
        index.soft_delete_version(ORDERS, 2)
        with pytest.raises(VersionNotFoundError):
            index.soft_delete_version(ORDERS, 2)

    def test_soft_delete_latest(self, index):
        """LATEST can be deleted by selector."""
        assert index.soft_delete_version(ORDERS, LATEST) == 3

    def test_delete_subject(self, index):
        """Deleting a subject returns the live versions it removed."""
        index.soft_delete_version(ORDERS, 1)
        assert index.delete_subject(ORDERS) == [2, 3]
        with pytest.raises(SubjectNotFoundError):
            index.list_versions(ORDERS)

    def test_delete_empty_subject(self, index):
        """Deleting a subject with nothing live returns an empty list."""
        assert index.delete_subject(ORDERS_KEY) == []

    def test_versions_not_reused(self, index):
        """Re-creating a deleted subject continues from the historical maximum."""
        index.delete_subject(ORDERS)

        assert index.append_version(ORDERS, 10) == 4
        assert index.list_versions(ORDERS) == [4]
        assert index.max_version(ORDERS) == 4
