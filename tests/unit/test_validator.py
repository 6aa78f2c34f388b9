from __future__ import annotations

from datetime import date

import pytest

from delivery_import.models.enums import Channel, Priority, Product, Stage, Status
from delivery_import.services.validator import is_valid_email, parse_date, parse_multi_value, validate


def _messages(row) -> list[tuple[str, str]]:
    return [(e.field, e.message) for e in row.validation_errors]


def test_valid_row_is_normalized(raw_row):
    row = validate(raw_row(**{"Account Manager Email": "AM@Example.com", "Stage": "poc"}), 2)

    assert row.is_valid
    assert row.row_number == 2
    f = row.fields
    assert f.account_name == "Acme Corp"
    assert f.account_manager_email == "am@example.com"
    assert f.stage is Stage.POC
    assert f.product == (Product.ANALYTICS,)
    assert f.channels == ()
    assert f.priority is Priority.HIGH
    assert f.target_date == date(2024, 3, 15)
    assert f.status is Status.IN_PROGRESS
    assert f.jira_ticket == "DEL-1"
    assert not row.is_duplicate and row.matched_record_id is None


def test_missing_required_fields_are_all_reported():
    row = validate({}, 5)
    fields = [e.field for e in row.validation_errors]
    assert fields == [
        "Account Name",
        "Account Manager Email",
        "Stage",
        "Product",
        "SPOC",
        "Priority",
        "Use Case Summary",
        "Target Date",
        "Status",
    ]
    assert ("Account Name", "Account Name is required") in _messages(row)
    assert not row.is_valid


def test_whitespace_only_counts_as_missing(raw_row):
    row = validate(raw_row(SPOC="   "), 3)
    assert _messages(row) == [("SPOC", "SPOC is required")]


def test_invalid_email_and_stage(raw_row):
    row = validate(raw_row(**{"Account Manager Email": "not-an-email", "Stage": "BETA"}), 2)
    assert _messages(row) == [
        ("Account Manager Email", "Invalid email format"),
        ("Stage", "Invalid stage. Must be one of: POC, ONBOARDING, PRODUCTION"),
    ]
    assert row.fields.account_manager_email is None


def test_unknown_product_tokens_reported_individually(raw_row):
    row = validate(raw_row(Product="ANALYTICS, FOO, BAR"), 2)
    assert _messages(row) == [
        ("Product", "Invalid product: FOO. Must be one of: ANALYTICS, AI_AGENT"),
        ("Product", "Invalid product: BAR. Must be one of: ANALYTICS, AI_AGENT"),
    ]


def test_ai_agent_requires_channels(raw_row):
    row = validate(raw_row(Product="AI_AGENT", Channels=""), 2)
    assert _messages(row) == [("Channels", "Channels required when AI Agent is selected")]


def test_ai_agent_with_channels_json_array(raw_row):
    row = validate(raw_row(Product='["analytics", "ai_agent"]', Channels='["whatsapp","pstn"]'), 2)
    assert row.is_valid
    assert row.fields.product == (Product.ANALYTICS, Product.AI_AGENT)
    # 宣言順に正規化
    assert row.fields.channels == (Channel.PSTN, Channel.WHATSAPP)


def test_ai_agent_invalid_channel(raw_row):
    row = validate(raw_row(Product="AI_AGENT", Channels="PSTN,EMAIL"), 2)
    assert _messages(row) == [("Channels", "Invalid channel: EMAIL. Must be one of: PSTN, WHATSAPP")]


def test_channels_ignored_without_ai_agent(raw_row):
    row = validate(raw_row(Product="ANALYTICS", Channels="NOT_A_CHANNEL"), 2)
    assert row.is_valid
    assert row.fields.channels == ()


def test_channel_rule_applies_even_when_product_has_invalid_tokens(raw_row):
    row = validate(raw_row(Product="AI_AGENT,FOO", Channels=""), 2)
    fields = [e.field for e in row.validation_errors]
    assert fields == ["Product", "Channels"]


def test_optional_customer_engineer_email(raw_row):
    assert validate(raw_row(**{"Customer Engineer Email": ""}), 2).is_valid
    row = validate(raw_row(**{"Customer Engineer Email": "bad@"}), 2)
    assert _messages(row) == [("Customer Engineer Email", "Invalid email format")]


def test_invalid_priority_status_and_date(raw_row):
    row = validate(raw_row(Priority="URGENT", Status="DONE", **{"Target Date": "someday"}), 2)
    assert _messages(row) == [
        ("Priority", "Invalid priority. Must be one of: HIGH, MEDIUM, LOW"),
        ("Target Date", "Invalid date format"),
        ("Status", "Invalid status. Must be one of: NOT_STARTED, IN_PROGRESS, ON_HOLD, COMPLETED, BLOCKED"),
    ]


def test_status_with_spaces_is_accepted(raw_row):
    row = validate(raw_row(Status="on hold"), 2)
    assert row.fields.status is Status.ON_HOLD


def test_validate_is_deterministic(raw_row):
    raw = raw_row(Stage="nope", Product="X,Y")
    assert validate(raw, 7) == validate(raw, 7)


def test_validate_tolerates_non_string_cells(raw_row):
    raw = raw_row()
    raw["Stage"] = None  # type: ignore[assignment]
    row = validate(raw, 2)
    assert _messages(row) == [("Stage", "Stage is required")]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2024-03-15", date(2024, 3, 15)),
        ("2024-03-15T10:30:00Z", date(2024, 3, 15)),
        ("Mar 15, 2024", date(2024, 3, 15)),
        ("03/15/2024", date(2024, 3, 15)),
        ("3-5-2024", date(2024, 3, 5)),
        ("", None),
        ("not a date", None),
        ("today", None),
        ("now", None),
        ("15/03/2024", None),
        ("2024-02-30", None),
    ],
)
def test_parse_date(text, expected):
    assert parse_date(text) == expected


def test_parse_multi_value():
    assert parse_multi_value(" a, ,b ") == ["A", "B"]
    assert parse_multi_value('["x", "y"]') == ["X", "Y"]
    assert parse_multi_value("[broken") == ["[BROKEN"]
    assert parse_multi_value("") == []


def test_is_valid_email():
    assert is_valid_email("a@b.co")
    assert not is_valid_email("a b@c.d")
    assert not is_valid_email("a@b")


@pytest.mark.parametrize("text", ["today", "now", "15/03/2024"])
def test_relative_or_day_first_target_date_is_invalid(raw_row, text):
    row = validate(raw_row(**{"Target Date": text}), 2)
    assert _messages(row) == [("Target Date", "Invalid date format")]
    assert row.fields.target_date is None
