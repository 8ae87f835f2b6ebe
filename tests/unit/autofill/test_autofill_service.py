# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the auto-fill resolution service.
"""

from datetime import date
from unittest.mock import MagicMock

import pytest
from formfill_common.autofill import AutoFillService
from formfill_common.autofill.context import InMemoryUserContextStore
from formfill_common.exceptions import ValidationFailureError
from formfill_common.models import (
    BoundingBox,
    ClassifiedField,
    FieldMapping,
    FieldType,
    HouseholdMember,
    MappingSource,
    Profile,
    SavedDate,
    UserContext,
)
from formfill_common.tables import LookupTables

TODAY = date(2024, 6, 1)


def field(key, field_type=FieldType.TEXT, label=None, field_id=None):
    return ClassifiedField(
        id=field_id or f"f-{key}",
        key=key,
        label=label if label is not None else key.replace("_", " ").title(),
        type=field_type,
        bbox=BoundingBox(page=1, x=0.1, y=0.1, width=0.3, height=0.03),
    )


@pytest.fixture
def context():
    return UserContext(
        profile=Profile(
            id="profile-1",
            full_name="Jane Doe",
            email="jane@example.com",
            phone="555-123-4567",
            date_of_birth="1985-03-09",
            address={"street": "1 Main St", "city": "Austin", "state": "TX", "zip": "78701"},
            custom_fields={"Insurance Number": "INS-42"},
        ),
        household_members=[
            HouseholdMember(id="m-child", name="Sam Doe", date_of_birth="2015-09-01", relationship="child"),
            HouseholdMember(id="m-spouse", name="Alex Doe", date_of_birth="1984-01-20", relationship="spouse"),
        ],
        saved_dates=[
            SavedDate(id="d-imm", label="Flu immunization", value="2023-10-15"),
            SavedDate(id="d-appt", label="Dental appointment", value="2024-07-01"),
        ],
    )


@pytest.fixture
def store(context):
    return InMemoryUserContextStore({"user-1": context})


@pytest.fixture
def service(store):
    return AutoFillService(context_provider=store, profile_writer=store, today_provider=lambda: TODAY)


@pytest.mark.unit
class TestProfileMatching:
    def test_exact_key(self, service, context):
        mapping = service.map_field(field("email"), context)
        assert mapping.value == "jane@example.com"
        assert mapping.source == MappingSource.PROFILE
        assert mapping.source_id == "profile-1"
        assert mapping.confidence == 0.95

    def test_synonym_key(self, service):
        context = UserContext(profile=Profile(id="p", full_name="Jane Doe"))
        mapping = service.map_field(field("patient_name"), context)
        assert mapping.value == "Jane Doe"
        assert mapping.source == MappingSource.PROFILE
        assert mapping.confidence == 0.8

    def test_fuzzy_key_below_exact(self, service, context):
        mapping = service.map_field(field("emails"), context)
        assert mapping.value == "jane@example.com"
        assert 0.7 < mapping.confidence < 0.95

    def test_exact_beats_fuzzy(self, service):
        context = UserContext(profile=Profile(id="p", phone="555", custom_fields={"phones": "999"}))
        mapping = service.map_field(field("phone"), context)
        assert mapping.value == "555"
        assert mapping.confidence == 0.95

    def test_address_parts_and_composite(self, service, context):
        assert service.map_field(field("city"), context).value == "Austin"
        assert service.map_field(field("zipcode"), context).value == "78701"
        assert service.map_field(field("address", FieldType.ADDRESS), context).value == "1 Main St Austin TX 78701"

    def test_custom_fields_are_normalized(self, service, context):
        mapping = service.map_field(field("insurance_number"), context)
        assert mapping.value == "INS-42"
        assert mapping.confidence == 0.95

    def test_profile_date_of_birth_is_formatted(self, service, context):
        mapping = service.map_field(field("dob", FieldType.DATE), context)
        assert mapping.value == "03/09/1985"
        assert mapping.source == MappingSource.PROFILE
        assert mapping.confidence == 0.8


@pytest.mark.unit
class TestDateMatching:
    def test_today_resolver_ignores_saved_dates(self, service, context):
        mapping = service.map_field(field("todays_date", FieldType.DATE), context)
        assert mapping.value == "06/01/2024"
        assert mapping.source == MappingSource.SAVED_DATE
        assert mapping.source_id is None
        assert mapping.confidence == 0.9

    def test_keyword_resolver_uses_saved_date_label(self, service, context):
        mapping = service.map_field(field("immunization_date", FieldType.DATE), context)
        assert mapping.value == "10/15/2023"
        assert mapping.source_id == "d-imm"
        assert mapping.confidence == 0.9

    def test_fuzzy_label_match(self, service):
        context = UserContext(saved_dates=[SavedDate(id="d1", label="Last Physical", value="2024-02-10")])
        mapping = service.map_field(field("last_physicals", FieldType.DATE), context)
        assert mapping.value == "02/10/2024"
        assert mapping.source_id == "d1"
        assert 0.7 < mapping.confidence < 1.0

    def test_date_strategy_requires_date_type(self, service, context):
        mapping = service.map_field(field("todays_date", FieldType.TEXT), context)
        assert not mapping.is_resolved

    def test_custom_date_format(self, context):
        service = AutoFillService(date_format="%Y-%m-%d", today_provider=lambda: TODAY)
        mapping = service.map_field(field("today", FieldType.DATE), context)
        assert mapping.value == "2024-06-01"


@pytest.mark.unit
class TestHouseholdMatching:
    def test_child_field_resolves_to_minor(self, service, context):
        mapping = service.map_field(field("child_name"), context)
        assert mapping.value == "Sam Doe"
        assert mapping.source == MappingSource.HOUSEHOLD_MEMBER
        assert mapping.source_id == "m-child"
        assert mapping.confidence == 1.0

    def test_spouse_field(self, service, context):
        mapping = service.map_field(field("spouse_name"), context)
        assert mapping.value == "Alex Doe"
        assert mapping.source_id == "m-spouse"

    def test_child_birth_date(self, service, context):
        mapping = service.map_field(field("child_birth_date", FieldType.DATE), context)
        assert mapping.value == "09/01/2015"

    def test_relationship_without_matching_member_is_unresolved(self, service, context):
        mapping = service.map_field(field("guardian_name", label="Guardian name"), context)
        assert not mapping.is_resolved

    def test_score_below_threshold_is_unresolved(self, service):
        context = UserContext(household_members=[
            HouseholdMember(id="m1", name="Pat", date_of_birth="1950-01-01", relationship="parent"),
        ])
        # Mentions a dependent, but an adult parent scores nothing for that key
        mapping = service.map_field(field("dependent_name"), context)
        assert not mapping.is_resolved

    def test_weights_are_configurable(self, context):
        tables = LookupTables.from_config({"household_weights": {"threshold": 0.85}})
        service = AutoFillService(tables=tables, today_provider=lambda: TODAY)
        # Relationship match alone scores 0.8 and no longer clears the threshold
        adult_child = UserContext(household_members=[
            HouseholdMember(id="m1", name="Chris", date_of_birth="1990-01-01", relationship="child"),
        ])
        assert not service.map_field(field("child_name"), adult_child).is_resolved
        assert service.map_field(field("child_name"), context).value == "Sam Doe"


@pytest.mark.unit
class TestAutoFill:
    def test_one_mapping_per_field_in_order(self, service):
        fields = [
            field("full_name"),
            field("favorite_color"),
            field("todays_date", FieldType.DATE),
            field("child_name"),
        ]

        result = service.auto_fill(fields, "user-1")

        assert result.success
        assert [m.field_id for m in result.mappings] == [f.id for f in fields]
        assert result.auto_filled_count == 3
        assert result.total_fields == 4
        unresolved = result.mappings[1]
        assert unresolved.value is None
        assert unresolved.source == MappingSource.MANUAL
        assert unresolved.confidence == 0.0

    def test_empty_field_list(self, service):
        result = service.auto_fill([], "user-1")
        assert result.success
        assert result.mappings == []

    def test_unknown_user_resolves_nothing(self, service):
        result = service.auto_fill([field("email")], "nobody")
        assert result.success
        assert result.auto_filled_count == 0

    def test_household_member_id_narrows_candidates(self, service):
        result = service.auto_fill([field("child_name")], "user-1", household_member_id="m-spouse")
        assert not result.mappings[0].is_resolved

    def test_missing_user_id_is_validation_failure(self, service):
        result = service.auto_fill([field("email")], "")
        assert not result.success
        assert result.error_kind == "ValidationFailure"

    def test_context_fetch_failure_is_provider_failure(self):
        provider = MagicMock()
        provider.fetch.side_effect = ConnectionError("profile store unreachable")
        service = AutoFillService(context_provider=provider)

        result = service.auto_fill([field("email")], "user-1")

        assert not result.success
        assert result.error_kind == "ProviderFailure"
        assert result.mappings == []

    def test_from_config(self):
        service = AutoFillService.from_config(
            {"autofill": {"date_format": "%d.%m.%Y", "fuzzy_threshold": 0.9}}
        )
        assert service.date_format == "%d.%m.%Y"
        assert service.tables.fuzzy_threshold == 0.9


@pytest.mark.unit
class TestUpdateFieldMapping:
    def test_replaces_existing_mapping(self, service):
        f = field("email")
        mappings = [FieldMapping(field_id=f.id, value="old@example.com", source=MappingSource.PROFILE, confidence=0.95)]

        mapping = service.update_field_mapping(mappings, f, "new@example.com")

        assert mappings == [mapping]
        assert mapping.source == MappingSource.MANUAL
        assert mapping.confidence == 1.0
        assert mapping.source_id is None

    def test_appends_when_missing(self, service):
        mappings = []
        service.update_field_mapping(mappings, field("notes"), "n/a")
        assert [m.field_id for m in mappings] == ["f-notes"]

    def test_write_back_to_profile_attribute(self, service, store):
        service.update_field_mapping([], field("Phone"), "555-000-1111", save_to_profile=True, user_id="user-1")
        assert store.fetch("user-1").profile.phone == "555-000-1111"

    def test_write_back_to_custom_field(self, service, store):
        service.update_field_mapping([], field("Shoe Size"), "9", save_to_profile=True, user_id="user-1")
        assert store.fetch("user-1").profile.custom_fields["shoe_size"] == "9"

    def test_written_value_is_used_by_later_passes(self, service):
        service.update_field_mapping([], field("pharmacy"), "Main St Pharmacy", save_to_profile=True, user_id="user-1")
        result = service.auto_fill([field("pharmacy")], "user-1")
        assert result.mappings[0].value == "Main St Pharmacy"

    def test_write_back_requires_user_and_writer(self):
        service = AutoFillService()
        with pytest.raises(ValidationFailureError) as exc_info:
            service.update_field_mapping([], field("email"), "x", save_to_profile=True)
        assert exc_info.value.problems == ["user_id", "profile_writer"]
