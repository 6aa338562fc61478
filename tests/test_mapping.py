"""Tests for the field mapping layer (pure form -> CRM payload functions)."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from src.inquiry_hub.config import InsightlyMappingDefaults, MappingContext, MondayMappingDefaults
from src.inquiry_hub.crm.mapping import (
    build_tags,
    has_mapper,
    map_inquiry,
    sanitize_tag_name,
    split_full_name,
    targets_for,
    truncate,
)
from src.inquiry_hub.errors import InvalidPayloadError, UnsupportedTargetError
from src.inquiry_hub.inquiries.schemas import SyncTarget, parse_form_data


class TestHelpers:
    def test_sanitize_tag_name(self):
        assert sanitize_tag_name("Referral: Friend / Family") == "Referral_Friend_Family"

    def test_build_tags_skips_empty(self):
        assert build_tags("MCRC", None, "", "Self Referral") == [
            {"TAG_NAME": "MCRC"},
            {"TAG_NAME": "Self_Referral"},
        ]

    def test_split_full_name(self):
        assert split_full_name("Mary Ann Smith") == ("Mary", "Ann Smith")
        assert split_full_name("Cher") == ("Cher", None)
        assert split_full_name("  ") == (None, None)

    def test_truncate(self):
        assert truncate("short") == "short"
        assert truncate("x" * 100) == "x" * 80 + "…"
        assert truncate(None) == ""


class TestRegistry:
    def test_mapped_form_types(self):
        assert targets_for("mediation-self-referral") == [SyncTarget.INSIGHTLY, SyncTarget.MONDAY]
        assert targets_for("restorative-program-referral") == [SyncTarget.INSIGHTLY, SyncTarget.MONDAY]

    def test_unmapped_form_types(self):
        assert targets_for("group-facilitation-inquiry") == []
        assert not has_mapper("unknown-form", SyncTarget.INSIGHTLY)

    def test_unsupported_pair_raises(self, mapping_context):
        with pytest.raises(UnsupportedTargetError):
            map_inquiry("community-education-training-request", SyncTarget.MONDAY, {}, mapping_context)


class TestInsightlyMapping:
    def test_mediation_lead(self, mediation_form, mapping_context):
        payload = map_inquiry("mediation-self-referral", SyncTarget.INSIGHTLY, mediation_form, mapping_context)

        assert payload["FIRST_NAME"] == "Jane"
        assert payload["LAST_NAME"] == "Doe"
        assert payload["EMAIL"] == "jane@example.com"
        assert payload["PHONE"] == "(555) 123-4567"
        assert payload["ADDRESS_POSTCODE"] == "20850"
        assert payload["ADDRESS_COUNTRY"] == "United States"
        assert payload["LEAD_SOURCE_ID"] == mapping_context.insightly.self_referral_source_id
        assert "OWNER_USER_ID" not in payload
        assert "Ongoing dispute with a neighbor" in payload["LEAD_DESCRIPTION"]
        assert [t["TAG_NAME"] for t in payload["TAGS"]] == [
            "MCRC",
            "Mediation",
            "Self_Referral",
            "Referral_Friend",
            "Court_Ordered_No",
        ]

    def test_restorative_lead(self, restorative_form, mapping_context):
        payload = map_inquiry(
            "restorative-program-referral", SyncTarget.INSIGHTLY, restorative_form, mapping_context
        )

        assert payload["FIRST_NAME"] == "Sam"
        assert payload["LAST_NAME"] == "Lee"
        assert payload["ORGANIZATION_NAME"] == "School / District"
        assert payload["TITLE"] == "Counselor"
        assert payload["LEAD_SOURCE_ID"] == mapping_context.insightly.restorative_source_id
        assert "Participant: Alex Kim" in payload["LEAD_DESCRIPTION"]
        assert "Requested service: Restorative Circle" in payload["LEAD_DESCRIPTION"]
        assert {"TAG_NAME": "Service_Restorative_Circle"} in payload["TAGS"]

    def test_single_word_referrer_uses_name_as_last_name(self, restorative_form, mapping_context):
        restorative_form["referrerName"] = "Cher"

        payload = map_inquiry(
            "restorative-program-referral", SyncTarget.INSIGHTLY, restorative_form, mapping_context
        )

        assert payload["FIRST_NAME"] == "Cher"
        assert payload["LAST_NAME"] == "Cher"

    def test_missing_lead_source_fails_closed(self, mediation_form):
        context = MappingContext()
        context.insightly.self_referral_source_id = None

        with pytest.raises(InvalidPayloadError) as exc_info:
            map_inquiry("mediation-self-referral", SyncTarget.INSIGHTLY, mediation_form, context)

        assert exc_info.value.target == "insightly"
        assert "LEAD_SOURCE_ID is required" in exc_info.value.problems

    def test_invalid_form_is_reported_for_the_target(self, mediation_form, mapping_context):
        del mediation_form["email"]

        with pytest.raises(InvalidPayloadError) as exc_info:
            map_inquiry("mediation-self-referral", SyncTarget.INSIGHTLY, mediation_form, mapping_context)

        assert str(exc_info.value).startswith("[insightly] Payload validation failed:")

    def test_accepts_parsed_variant(self, mediation_form, mapping_context):
        form = parse_form_data("mediation-self-referral", mediation_form)

        payload = map_inquiry("mediation-self-referral", SyncTarget.INSIGHTLY, form, mapping_context)

        assert payload["FIRST_NAME"] == "Jane"


class TestMondayMapping:
    def test_mediation_item(self, mediation_form, mapping_context):
        context = mapping_context.model_copy(
            update={"submitted_at": datetime(2026, 2, 14, 23, 0, tzinfo=timezone.utc)}
        )

        payload = map_inquiry("mediation-self-referral", SyncTarget.MONDAY, mediation_form, context)

        assert payload["board_id"] == 987654
        assert payload["group_id"] == "mediation_referrals"
        assert payload["item_name"].startswith("Mediation – Jane Doe – Ongoing dispute")
        columns = json.loads(payload["column_values"])
        assert columns["status"] == {"label": "New"}
        assert columns["form_type"] == {"labels": ["Mediation Referral"]}
        assert columns["submission_date"] == {"date": "2026-02-14"}
        assert columns["service_area"] == "Mediation"
        assert columns["primary_contact"] == "Jane Doe • Email: jane@example.com • Phone: (555) 123-4567"
        assert json.loads(columns["raw_payload"])["firstName"] == "Jane"
        assert "owner" not in columns

    def test_long_overview_is_truncated_in_item_name(self, mediation_form, mapping_context):
        mediation_form["conflictOverview"] = "word " * 60

        payload = map_inquiry("mediation-self-referral", SyncTarget.MONDAY, mediation_form, mapping_context)

        assert payload["item_name"].endswith("…")

    def test_restorative_item(self, restorative_form, mapping_context):
        payload = map_inquiry("restorative-program-referral", SyncTarget.MONDAY, restorative_form, mapping_context)

        assert payload["group_id"] == "restorative_referrals"
        assert payload["item_name"].startswith("Restorative – school – Conflict between two students")
        columns = json.loads(payload["column_values"])
        assert columns["service_area"] == "Restorative Program"
        assert columns["primary_contact"].startswith("Sam Lee • Email: sam.lee@school.org")

    def test_assignee_column_when_configured(self, mediation_form):
        context = MappingContext(
            monday=MondayMappingDefaults(board_id=1, default_assignee_id=42),
            submitted_at=datetime(2026, 2, 14, tzinfo=timezone.utc),
        )

        payload = map_inquiry("mediation-self-referral", SyncTarget.MONDAY, mediation_form, context)

        columns = json.loads(payload["column_values"])
        assert columns["owner"] == {"personsAndTeams": [{"id": 42, "kind": "person"}]}

    def test_missing_board_fails_closed(self, mediation_form):
        with pytest.raises(InvalidPayloadError) as exc_info:
            map_inquiry("mediation-self-referral", SyncTarget.MONDAY, mediation_form, MappingContext())

        assert "board_id is required" in exc_info.value.problems

    def test_missing_submission_time_fails_closed(self, mediation_form, mapping_context):
        context = mapping_context.model_copy(update={"submitted_at": None})

        with pytest.raises(InvalidPayloadError) as exc_info:
            map_inquiry("mediation-self-referral", SyncTarget.MONDAY, mediation_form, context)

        assert exc_info.value.problems == ["submitted_at is required for the submission date column"]


class TestUpdatePayloads:
    def test_insightly_update_leaves_status_and_owners_alone(self, mediation_form):
        context = MappingContext(
            insightly=InsightlyMappingDefaults(
                self_referral_source_id=7, lead_status_id=3, owner_user_id=11, responsible_user_id=12
            )
        )

        created = map_inquiry("mediation-self-referral", SyncTarget.INSIGHTLY, mediation_form, context)
        updated = map_inquiry(
            "mediation-self-referral", SyncTarget.INSIGHTLY, mediation_form, context, for_update=True
        )

        assert created["LEAD_STATUS_ID"] == 3
        assert created["OWNER_USER_ID"] == 11
        for field in ("LEAD_STATUS_ID", "OWNER_USER_ID", "RESPONSIBLE_USER_ID"):
            assert field not in updated
        assert updated["FIRST_NAME"] == "Jane"
        assert updated["LEAD_SOURCE_ID"] == 7

    def test_monday_update_leaves_status_and_assignee_alone(self, mediation_form):
        context = MappingContext(
            monday=MondayMappingDefaults(board_id=1, default_assignee_id=42),
            submitted_at=datetime(2026, 2, 14, tzinfo=timezone.utc),
        )

        updated = map_inquiry(
            "mediation-self-referral", SyncTarget.MONDAY, mediation_form, context, for_update=True
        )

        columns = json.loads(updated["column_values"])
        assert "status" not in columns
        assert "owner" not in columns
        assert columns["submission_date"] == {"date": "2026-02-14"}
        assert columns["service_area"] == "Mediation"
