"""Shared fixtures: a source and a target instance with diverging schemas."""

import pytest

from record_migrator.models.migration import LookupConfig, MigrationConfig
from record_migrator.models.schema import ChildRelationship

from .fakes import FakeInstance, make_field, picklist_values


def account_children():
    return [
        {"childSObject": "Contact", "field": "AccountId", "relationshipName": "Contacts", "cascadeDelete": False},
        {"childSObject": "Case", "field": "AccountId", "relationshipName": "Cases", "cascadeDelete": False},
        {"childSObject": "AccountHistory", "field": "AccountId", "relationshipName": "Histories"},
        {"childSObject": "AccountShare", "field": "AccountId", "relationshipName": "Shares"},
        {"childSObject": "AccountFeed", "field": "ParentId", "relationshipName": "Feeds"},
        {"childSObject": "Attachment", "field": None, "relationshipName": None},
    ]


def build_source() -> FakeInstance:
    source = FakeInstance("source", prefix="S00")
    source.add_object("State__c", [make_field("Name", nillable=False)])
    source.add_object("Account", [
        make_field("Name", nillable=False),
        make_field("Industry", "picklist", picklistValues=picklist_values("Technology", "Retail", "Energy")),
        make_field("Description", "textarea"),
        make_field("Rating__c"),
        make_field("State__c", "reference", referenceTo=["State__c"]),
        make_field("Legacy_Id__c", externalId=True),
        make_field("AnnualRevenue", "currency"),
        make_field("Founded__c", "date"),
        make_field("Score__c", "double", calculated=True, createable=False),
    ], child_relationships=account_children())
    source.add_object("Contact", [
        make_field("LastName", nillable=False),
        make_field("AccountId", "reference", referenceTo=["Account"]),
        make_field("State__c", "reference", referenceTo=["State__c"]),
        make_field("Legacy_Id__c", externalId=True),
        make_field("Interests__c", "multipicklist", picklistValues=picklist_values("Golf", "Tennis", "Chess")),
    ])
    source.add_object("Case", [
        make_field("Subject"),
        make_field("AccountId", "reference", referenceTo=["Account"]),
    ])

    ids = source.ids
    ids["draft"] = source.add_record("State__c", Name="Draft")
    ids["archived"] = source.add_record("State__c", Name="Archived")

    ids["acme"] = source.add_record(
        "Account", Name="Acme", Industry="Technology", Description="Anvils", Rating__c="Hot",
        State__c=ids["draft"], AnnualRevenue=1000.0, Founded__c="1949-03-01", Score__c=9.5,
    )
    ids["globex"] = source.add_record(
        "Account", Name="Globex", Industry="Energy", State__c=ids["archived"],
    )
    ids["initech"] = source.add_record("Account", Name="Initech", Industry="Retail")

    ids["wile"] = source.add_record(
        "Contact", LastName="Coyote", AccountId=ids["acme"], State__c=ids["draft"], Interests__c="Golf;Tennis",
    )
    ids["road"] = source.add_record("Contact", LastName="Runner", AccountId=ids["acme"], Interests__c="Tennis")
    ids["hank"] = source.add_record("Contact", LastName="Scorpio", AccountId=ids["globex"])
    ids["case1"] = source.add_record("Case", Subject="Broken anvil", AccountId=ids["acme"])
    return source


def build_target() -> FakeInstance:
    target = FakeInstance("target", prefix="T00")
    target.add_object("State__c", [make_field("Name", nillable=False)])
    target.add_object("Account", [
        make_field("Name", nillable=False),
        make_field(
            "Industry", "picklist",
            picklistValues=picklist_values("Technology", "Retail", "Energy", "Finance"),
            restrictedPicklist=True,
        ),
        make_field("Description", "string", length=255),
        make_field("State__c", "reference", referenceTo=["State__c"]),
        make_field("Legacy_Id__c", externalId=True, unique=True),
        make_field("AnnualRevenue", "currency"),
        make_field("Founded__c", "date"),
        make_field("Region__c"),
        make_field("Score__c", "double", calculated=True, createable=False),
    ], child_relationships=account_children())
    target.add_object("Contact", [
        make_field("LastName", nillable=False),
        make_field("AccountId", "reference", referenceTo=["Account"]),
        make_field("State__c", "reference", referenceTo=["State__c"]),
        make_field("Legacy_Id__c", externalId=True, unique=True),
        make_field(
            "Interests__c", "multipicklist",
            picklistValues=picklist_values("Golf", "Chess"),
            restrictedPicklist=True,
        ),
    ])
    target.add_object("Case", [
        make_field("Subject"),
        make_field("AccountId", "reference", referenceTo=["Account"]),
    ])

    # Pre-existing records with IDs unrelated to the source
    target.ids["filler"] = target.add_record("State__c", Name="Final")
    target.ids["draft"] = target.add_record("State__c", Name="Draft")
    return target


@pytest.fixture
def source():
    return build_source()


@pytest.fixture
def target():
    return build_target()


@pytest.fixture
def contacts_relationship():
    return ChildRelationship(relationship_name="Contacts", child_object="Contact", foreign_key_field="AccountId")


@pytest.fixture
def cases_relationship():
    return ChildRelationship(relationship_name="Cases", child_object="Case", foreign_key_field="AccountId")


@pytest.fixture
def state_lookup():
    return LookupConfig(field="State__c", object="State__c", name_field="Name")


@pytest.fixture
def config(state_lookup, contacts_relationship):
    return MigrationConfig(
        object_name="Account",
        relationships=[contacts_relationship],
        lookup=state_lookup,
    )
