from __future__ import annotations

import json
import re
import warnings
from collections.abc import Mapping
from datetime import date
from enum import Enum
from typing import TypeVar

import pandas as pd

from ..models.enums import Channel, Priority, Product, Stage, Status, enum_values
from ..models.parsed_row import (
    ACCOUNT_MANAGER_EMAIL,
    ACCOUNT_NAME,
    CHANNELS,
    CUSTOMER_ENGINEER_EMAIL,
    JIRA_TICKET,
    PRIORITY,
    PRODUCT,
    SPOC,
    STAGE,
    STATUS,
    TARGET_DATE,
    USE_CASE_SUMMARY,
    FieldError,
    ParsedRow,
    ProjectFields,
)

"""Row validator: raw CSV row -> ParsedRow with field-level errors.

Pure and total: no I/O, never raises. Every rule is applied independently and
all violations are collected in field declaration order, so the same input
always yields the same error tuple.
"""

__all__ = [
    "validate",
    "parse_date",
    "parse_multi_value",
    "is_valid_email",
]

E = TypeVar("E", bound=Enum)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ISO_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_US_DATE_RE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})")
_YEAR_RE = re.compile(r"\d{4}")


def is_valid_email(text: str) -> bool:
    return bool(_EMAIL_RE.match(text.strip()))


def parse_date(text: str) -> date | None:
    """Parse a target date. First successful form wins:

    1. ISO ``YYYY-MM-DD`` prefix (time / zone suffix ignored)
    2. numeric ``MM/DD/YYYY`` prefix (also ``-`` or ``.``), month first only
    3. generic parse of text naming a 4-digit year (e.g. ``Mar 15, 2024``)

    Relative words (``today``, ``now``) and day-first numeric dates are rejected.
    """
    text = text.strip()
    if not text:
        return None

    m = _ISO_PREFIX_RE.match(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            pass  # 2024-02-30 等 -> 次の形式へ

    m = _US_DATE_RE.match(text)
    if m:
        # 日付先行 (15/03/2024) は受け付けない
        try:
            return date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
        except ValueError:
            return None

    if not _YEAR_RE.search(text):
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UserWarning)
            ts = pd.to_datetime(text, dayfirst=False)
        if not pd.isna(ts):
            return ts.date()
    except (ValueError, TypeError, OverflowError):
        pass
    return None


def parse_multi_value(text: str) -> list[str]:
    """Split a set-valued cell: JSON array or comma-separated text.

    Tokens are trimmed and upper-cased; empty fragments are dropped.
    """
    text = text.strip()
    if not text:
        return []
    items: list[object] | None = None
    if text.startswith("["):
        try:
            loaded = json.loads(text)
            if isinstance(loaded, list):
                items = loaded
        except ValueError:
            items = None  # カンマ区切りとして再解釈
    if items is None:
        items = text.split(",")
    tokens = [str(i).strip().upper() for i in items]
    return [t for t in tokens if t]


def _parse_enum(enum_cls: type[E], text: str) -> E | None:
    try:
        return enum_cls(text)
    except ValueError:
        return None


def _enum_set(enum_cls: type[E], tokens: list[str]) -> tuple[tuple[E, ...], list[str]]:
    """Map tokens to enum members -> (members in declaration order, unknown tokens)."""
    known: set[E] = set()
    unknown: list[str] = []
    for token in tokens:
        member = _parse_enum(enum_cls, token)
        if member is None:
            if token not in unknown:
                unknown.append(token)
        else:
            known.add(member)
    ordered = tuple(m for m in enum_cls if m in known)
    return ordered, unknown


def _required(errors: list[FieldError], label: str, value: str) -> bool:
    if not value:
        errors.append(FieldError(label, f"{label} is required"))
        return False
    return True


def validate(raw_row: Mapping[str, object], row_number: int) -> ParsedRow:
    """Validate one raw row.

    Args:
        raw_row: header -> cell text, as read from the file
        row_number: 1-based source row number (first data row = 2)

    Returns:
        ParsedRow; ``is_valid`` is False when any rule failed.
    """
    def cell(label: str) -> str:
        value = raw_row.get(label)
        return value.strip() if isinstance(value, str) else ""

    errors: list[FieldError] = []

    account_name = cell(ACCOUNT_NAME)
    _required(errors, ACCOUNT_NAME, account_name)

    am_email = cell(ACCOUNT_MANAGER_EMAIL)
    if _required(errors, ACCOUNT_MANAGER_EMAIL, am_email) and not is_valid_email(am_email):
        errors.append(FieldError(ACCOUNT_MANAGER_EMAIL, "Invalid email format"))
        am_email = ""

    stage_text = cell(STAGE)
    stage: Stage | None = None
    if _required(errors, STAGE, stage_text):
        stage = _parse_enum(Stage, stage_text.upper())
        if stage is None:
            errors.append(
                FieldError(STAGE, f"Invalid stage. Must be one of: {', '.join(enum_values(Stage))}")
            )

    product_text = cell(PRODUCT)
    product_tokens = parse_multi_value(product_text)
    products: tuple[Product, ...] = ()
    if _required(errors, PRODUCT, product_text):
        products, unknown_products = _enum_set(Product, product_tokens)
        for token in unknown_products:
            errors.append(
                FieldError(
                    PRODUCT,
                    f"Invalid product: {token}. Must be one of: {', '.join(enum_values(Product))}",
                )
            )
        if not product_tokens:
            errors.append(FieldError(PRODUCT, f"{PRODUCT} is required"))

    # product の妥当性とは独立に AI_AGENT の有無を判定する
    channels: tuple[Channel, ...] = ()
    if Product.AI_AGENT.value in product_tokens:
        channel_tokens = parse_multi_value(cell(CHANNELS))
        if not channel_tokens:
            errors.append(FieldError(CHANNELS, "Channels required when AI Agent is selected"))
        else:
            channels, unknown_channels = _enum_set(Channel, channel_tokens)
            for token in unknown_channels:
                errors.append(
                    FieldError(
                        CHANNELS,
                        f"Invalid channel: {token}. Must be one of: {', '.join(enum_values(Channel))}",
                    )
                )

    ce_email = cell(CUSTOMER_ENGINEER_EMAIL)
    if ce_email and not is_valid_email(ce_email):
        errors.append(FieldError(CUSTOMER_ENGINEER_EMAIL, "Invalid email format"))
        ce_email = ""

    spoc = cell(SPOC)
    _required(errors, SPOC, spoc)

    priority_text = cell(PRIORITY)
    priority: Priority | None = None
    if _required(errors, PRIORITY, priority_text):
        priority = _parse_enum(Priority, priority_text.upper())
        if priority is None:
            errors.append(
                FieldError(
                    PRIORITY, f"Invalid priority. Must be one of: {', '.join(enum_values(Priority))}"
                )
            )

    summary = cell(USE_CASE_SUMMARY)
    _required(errors, USE_CASE_SUMMARY, summary)

    target_text = cell(TARGET_DATE)
    target_date: date | None = None
    if _required(errors, TARGET_DATE, target_text):
        target_date = parse_date(target_text)
        if target_date is None:
            errors.append(FieldError(TARGET_DATE, "Invalid date format"))

    status_text = cell(STATUS)
    status: Status | None = None
    if _required(errors, STATUS, status_text):
        status = _parse_enum(Status, status_text.upper().replace(" ", "_"))
        if status is None:
            errors.append(
                FieldError(STATUS, f"Invalid status. Must be one of: {', '.join(enum_values(Status))}")
            )

    fields = ProjectFields(
        account_name=account_name or None,
        account_manager_email=am_email.lower() or None,
        stage=stage,
        product=products,
        channels=channels,
        customer_engineer_email=ce_email.lower() or None,
        spoc=spoc or None,
        priority=priority,
        use_case_summary=summary or None,
        target_date=target_date,
        status=status,
        jira_ticket=cell(JIRA_TICKET) or None,
    )
    return ParsedRow(row_number=row_number, fields=fields, validation_errors=tuple(errors))
