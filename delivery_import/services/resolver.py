from __future__ import annotations

import logging
from collections.abc import Sequence

from ..db.project_store import ProjectStore
from ..models.parsed_row import ACCOUNT_MANAGER_EMAIL, CUSTOMER_ENGINEER_EMAIL, FieldError, ParsedRow

"""Directory resolution: email / account-name references -> internal ids.

Users are looked up once per import with a single batched query; a miss is
not an error of the resolver itself but is folded back into the row's
validation errors ("User not found: ...") so every reason a row is unusable
lives in one place.

Account names are get-or-create (exact, case-sensitive name). This is the
only write performed during preview: names are shared vocabulary, and the
duplicate key is built from the name text, not its id.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "resolve_users",
    "resolve_account_names",
]


def _referenced_emails(row: ParsedRow) -> list[tuple[str, str]]:
    """(label, lower-cased email) pairs referenced by a row, AM first."""
    refs: list[tuple[str, str]] = []
    if row.fields.account_manager_email:
        refs.append((ACCOUNT_MANAGER_EMAIL, row.fields.account_manager_email.lower()))
    if row.fields.customer_engineer_email:
        refs.append((CUSTOMER_ENGINEER_EMAIL, row.fields.customer_engineer_email.lower()))
    return refs


def resolve_users(
    rows: Sequence[ParsedRow], store: ProjectStore
) -> tuple[list[ParsedRow], dict[str, str]]:
    """Resolve every distinct email of the valid rows in one lookup.

    Returns:
        (rows with directory misses appended to their errors, email -> user id)
        Invalid input rows pass through untouched.
    """
    emails: set[str] = set()
    for row in rows:
        if row.is_valid:
            emails.update(email for _, email in _referenced_emails(row))

    email_to_id = store.find_users_by_emails(emails) if emails else {}
    email_to_id = {k.lower(): v for k, v in email_to_id.items()}
    logger.debug("resolved users %d/%d", len(email_to_id), len(emails))

    resolved: list[ParsedRow] = []
    for row in rows:
        if not row.is_valid:
            resolved.append(row)
            continue
        misses = [
            FieldError(label, f"User not found: {email}")
            for label, email in _referenced_emails(row)
            if email not in email_to_id
        ]
        resolved.append(row.with_errors(*misses) if misses else row)
    return resolved, email_to_id


def resolve_account_names(rows: Sequence[ParsedRow], store: ProjectStore) -> dict[str, str]:
    """Get-or-create each distinct account name referenced by a valid row.

    Returns:
        account name -> account name id
    """
    name_to_id: dict[str, str] = {}
    for row in rows:
        name = row.fields.account_name
        if not row.is_valid or not name or name in name_to_id:
            continue
        with store.transaction():
            name_to_id[name] = store.get_or_create_account_name(name)
    logger.debug("resolved account names=%d", len(name_to_id))
    return name_to_id
