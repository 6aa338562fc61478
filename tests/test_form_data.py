"""Tests for formData helpers and the strict form variants."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.inquiry_hub.errors import InvalidPayloadError
from src.inquiry_hub.inquiries.form_data import (
    DEFAULT_PARTICIPANT_NAME,
    hydrate_form_data,
    parse_scheduled_time,
    resolve_participant_name,
    serialize_form_data,
)
from src.inquiry_hub.inquiries.schemas import (
    MediationSelfReferral,
    RestorativeProgramReferral,
    parse_form_data,
    service_area_label,
)


class TestResolveParticipantName:
    def test_combined_name_wins(self):
        assert resolve_participant_name({"name": "  Pat Q ", "firstName": "Other"}) == "Pat Q"

    def test_first_and_last_name(self):
        assert resolve_participant_name({"firstName": "Jane", "lastName": "Doe"}) == "Jane Doe"

    def test_contact_one_aliases(self):
        data = {"contactOneFirstName": "Lee", "contactOneLastName": "Park"}
        assert resolve_participant_name(data) == "Lee Park"

    def test_participant_name_alias(self):
        assert resolve_participant_name({"participantName": "Alex Kim"}) == "Alex Kim"

    def test_first_name_only(self):
        assert resolve_participant_name({"firstName": "Jane"}) == "Jane"

    def test_blank_name_falls_through(self):
        assert resolve_participant_name({"name": "   ", "firstName": "Jane"}) == "Jane"

    def test_last_name_alone_uses_placeholder(self):
        assert resolve_participant_name({"name": "   ", "lastName": "Doe"}) == DEFAULT_PARTICIPANT_NAME

    @pytest.mark.parametrize("form_data", [None, {}, "Jane", {"firstName": 42, "lastName": None}])
    def test_placeholder_when_nothing_usable(self, form_data):
        assert resolve_participant_name(form_data) == DEFAULT_PARTICIPANT_NAME


class TestParseScheduledTime:
    def test_zulu_suffix(self):
        assert parse_scheduled_time("2026-03-10T14:00:00Z") == datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)

    def test_offset_is_kept(self):
        parsed = parse_scheduled_time("2026-03-10T10:00:00-04:00")
        assert parsed == datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_scheduled_time("2026-03-10T14:00:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "   ", "next tuesday", "not-a-date", 1700000000, {"time": "x"}])
    def test_unusable_values_yield_none(self, value):
        assert parse_scheduled_time(value) is None

    def test_datetime_passes_through(self):
        value = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)
        assert parse_scheduled_time(value) is value


class TestStorageConversion:
    def test_serialize_drops_none_and_formats_datetimes(self):
        data = {"deadline": datetime(2026, 4, 1, tzinfo=timezone.utc), "note": None, "items": [None, "x"]}

        assert serialize_form_data(data) == {"deadline": "2026-04-01T00:00:00+00:00", "items": ["x"]}

    def test_hydrate_restores_datetimes_only(self):
        stored = {"deadline": "2026-04-01T00:00:00+00:00", "zipCode": "20850", "city": "2026 Rd"}

        hydrated = hydrate_form_data(stored)

        assert hydrated["deadline"] == datetime(2026, 4, 1, tzinfo=timezone.utc)
        assert hydrated["zipCode"] == "20850"
        assert hydrated["city"] == "2026 Rd"


class TestParseFormData:
    def test_mediation_variant(self, mediation_form):
        form = parse_form_data("mediation-self-referral", mediation_form)

        assert isinstance(form, MediationSelfReferral)
        assert form.first_name == "Jane"
        assert form.additional_contacts == ()

    def test_variant_is_frozen(self, mediation_form):
        form = parse_form_data("mediation-self-referral", mediation_form)

        with pytest.raises(ValidationError):
            form.first_name = "Changed"

    def test_form_type_key_is_ignored(self, restorative_form):
        form = parse_form_data(
            "restorative-program-referral", {**restorative_form, "formType": "restorative-program-referral"}
        )

        assert isinstance(form, RestorativeProgramReferral)
        assert form.referrer_org == "school"

    def test_unmapped_form_types_return_none(self):
        assert parse_form_data("group-facilitation-inquiry", {"anything": True}) is None
        assert parse_form_data("not-a-form", {}) is None

    def test_missing_required_fields(self, mediation_form):
        del mediation_form["lastName"]
        mediation_form["email"] = "not-an-email"

        with pytest.raises(InvalidPayloadError) as exc_info:
            parse_form_data("mediation-self-referral", mediation_form)

        problems = " ".join(exc_info.value.problems)
        assert "lastName" in problems
        assert "email" in problems

    def test_phone_needs_ten_digits(self, mediation_form):
        mediation_form["phone"] = "555-1234"

        with pytest.raises(InvalidPayloadError):
            parse_form_data("mediation-self-referral", mediation_form)

    def test_conflict_overview_length_limit(self, mediation_form):
        mediation_form["conflictOverview"] = "x" * 1001

        with pytest.raises(InvalidPayloadError):
            parse_form_data("mediation-self-referral", mediation_form)

    def test_at_most_five_additional_contacts(self, mediation_form):
        contact = {"firstName": "A", "lastName": "B", "phone": "3015550100", "email": "a@b.co"}
        mediation_form["additionalContacts"] = [contact] * 6

        with pytest.raises(InvalidPayloadError):
            parse_form_data("mediation-self-referral", mediation_form)

    def test_restorative_rejects_unknown_org(self, restorative_form):
        restorative_form["referrerOrg"] = "aliens"

        with pytest.raises(InvalidPayloadError):
            parse_form_data("restorative-program-referral", restorative_form)


class TestServiceAreaLabel:
    @pytest.mark.parametrize(
        ("area", "label"),
        [
            ("mediation", "Mediation"),
            ("facilitation", "Facilitation"),
            ("restorativePractices", "Restorative Practices"),
            ("somethingElse", "Mediation"),
        ],
    )
    def test_labels(self, area, label):
        assert service_area_label(area) == label
