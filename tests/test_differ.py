"""Tests for FieldDiffer."""

from dataclasses import replace

import pytest

from scripts.directory_sync.builder import AccountBuilder
from scripts.directory_sync.differ import FieldDiffer
from scripts.directory_sync.models import ChangedField, TargetAccount

from conftest import AFFILIATION_ATTRIBUTE, make_record


@pytest.fixture
def differ(sync_config):
    return FieldDiffer(sync_config)


def in_sync_account(record, config):
    payload = AccountBuilder(config).build_create(
        record, config.principal_name(record.source_id), record.source_id, "pw"
    )
    payload["id"] = "acc-1"
    return TargetAccount.from_graph(payload, AFFILIATION_ATTRIBUTE)


def test_no_changes_for_freshly_created_account(differ, sync_config):
    record = make_record()

    assert differ.diff(record, in_sync_account(record, sync_config)) == frozenset()


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({"chosenName": "Annie"}, {ChangedField.DISPLAY_NAME}),
        ({"givenName": "Jo"}, {ChangedField.GIVEN_NAME}),
        ({"familyName": "Jansen"}, {ChangedField.SURNAME, ChangedField.DISPLAY_NAME}),
        ({"schacHomeOrganization": "other.edu"}, {ChangedField.COMPANY_NAME}),
        ({"email": "new@mail.example.com"}, {ChangedField.MAIL, ChangedField.OTHER_MAILS}),
        (
            {"linkedAccounts": [{"eduPersonAffiliations": ["staff@example.edu"]}]},
            {ChangedField.AFFILIATIONS},
        ),
    ],
)
def test_single_source_change_is_reported(differ, sync_config, overrides, expected):
    account = in_sync_account(make_record(), sync_config)

    assert differ.diff(make_record(**overrides), account) == expected


def test_email_comparison_ignores_case(differ, sync_config):
    record = make_record()
    account = replace(
        in_sync_account(record, sync_config),
        mail=record.primary_email.upper(),
        other_mails=(record.primary_email.upper(),),
    )

    assert differ.diff(record, account) == frozenset()


def test_other_mails_only_needs_to_contain_primary_email(differ, sync_config):
    record = make_record()
    account = replace(
        in_sync_account(record, sync_config),
        other_mails=("stale@old.example.com", record.primary_email),
    )

    assert differ.diff(record, account) == frozenset()


def test_policy_fields_compare_against_constants(differ, sync_config):
    record = make_record()
    account = replace(in_sync_account(record, sync_config), usage_location="US", country=None)

    assert differ.diff(record, account) == {ChangedField.USAGE_LOCATION, ChangedField.COUNTRY}


def test_absent_source_value_matches_absent_target_value(differ, sync_config):
    record = make_record(givenName=None, schacHomeOrganization=None, linkedAccounts=None)
    account = in_sync_account(record, sync_config)

    assert account.given_name is None
    assert account.affiliations is None
    assert differ.diff(record, account) == frozenset()


def test_reordered_affiliations_are_not_a_change(differ, sync_config):
    record = make_record(linkedAccounts=[{"eduPersonAffiliations": ["student@a", "staff@b"]}])
    account = replace(in_sync_account(record, sync_config), affiliations="staff@b;student@a")

    assert differ.diff(record, account) == frozenset()


def test_changes_carry_current_and_expected_values(differ, sync_config):
    account = in_sync_account(make_record(), sync_config)

    [change] = differ.changes(make_record(givenName="Jo"), account)

    assert change.field is ChangedField.GIVEN_NAME
    assert change.current == "Johanna"
    assert change.expected == "Jo"


def test_diff_is_deterministic(differ, sync_config):
    record = make_record(email="x@y.z", chosenName="Bo")
    account = in_sync_account(make_record(), sync_config)

    assert differ.diff(record, account) == differ.diff(record, account)
