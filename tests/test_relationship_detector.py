"""Tests for child relationship detection."""

import pytest

from record_migrator.clients.exceptions import InstanceError
from record_migrator.services.relationship_detector import (
    RelationshipDetector,
    detect_child_relationships,
)


def test_platform_children_and_incomplete_entries_are_skipped(source):
    relationships = detect_child_relationships(source, "Account")

    assert [r.key for r in relationships] == ["Case.AccountId", "Contact.AccountId"]


def test_duplicate_entries_are_listed_once(source):
    source.schemas["Account"]["childRelationships"].append(
        {"childSObject": "Contact", "field": "AccountId", "relationshipName": "Contacts"}
    )

    relationships = detect_child_relationships(source, "Account")

    assert [r.key for r in relationships].count("Contact.AccountId") == 1


def test_estimate_counts_per_relationship(source):
    detector = RelationshipDetector(source)
    relationships = detector.detect_child_relationships("Account")

    detector.estimate_counts(relationships, [source.ids["acme"], source.ids["globex"]])

    counts = {r.child_object: r.estimated_count for r in relationships}
    assert counts == {"Case": 1, "Contact": 3}


def test_estimate_counts_without_parents_is_zero(source):
    detector = RelationshipDetector(source)
    relationships = detector.estimate_counts(detector.detect_child_relationships("Account"), [])

    assert all(r.estimated_count == 0 for r in relationships)
    assert source.count_calls("count") == 0


def test_failed_count_leaves_estimate_empty(source):
    detector = RelationshipDetector(source)
    relationships = detector.detect_child_relationships("Account")
    del source.schemas["Case"]

    detector.estimate_counts(relationships, [source.ids["acme"]])

    counts = {r.child_object: r.estimated_count for r in relationships}
    assert counts == {"Case": None, "Contact": 2}


def test_unknown_parent_raises(source):
    detector = RelationshipDetector(source)

    with pytest.raises(InstanceError) as excinfo:
        detector.detect_child_relationships("Nope__c")
    assert excinfo.value.status == 404
