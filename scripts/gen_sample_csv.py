#!/usr/bin/env python3
"""Synthetic project CSV generator for performance testing.

Generates a CSV in the import format (canonical headers, one project per row)
plus the list of user emails it references, so the mock store can be seeded
with matching users:

    python scripts/gen_sample_csv.py data/sample.csv --rows 5000
    # -> data/sample.csv, data/sample.users.txt

A fraction of rows can be made deliberately invalid (--invalid-ratio) to
exercise the validation path.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

from delivery_import.models.enums import Channel, Priority, Product, Stage, Status, enum_values
from delivery_import.models.parsed_row import CSV_HEADERS

DOMAIN = "example.com"


def generate_projects(rows: int, *, accounts: int = 200, users: int = 20, invalid_ratio: float = 0.0,
                      seed: int = 42) -> tuple[pd.DataFrame, list[str]]:
    """Generate a DataFrame of project rows and the emails it references.

    Args:
        rows: number of data rows
        accounts: distinct account names to draw from
        users: distinct account manager / engineer emails
        invalid_ratio: share of rows given a bad stage value
        seed: random seed for reproducible data

    Returns:
        (DataFrame with CSV_HEADERS columns, sorted list of user emails)
    """
    rng = np.random.default_rng(seed)
    emails = [f"user{i:03d}@{DOMAIN}" for i in range(users)]

    product_choices = [
        Product.ANALYTICS.value,
        Product.AI_AGENT.value,
        f"{Product.ANALYTICS.value},{Product.AI_AGENT.value}",
    ]
    channel_choices = [
        Channel.PSTN.value,
        Channel.WHATSAPP.value,
        f"{Channel.PSTN.value},{Channel.WHATSAPP.value}",
    ]
    products = rng.choice(product_choices, rows)
    channels = np.where(
        np.char.find(products.astype(str), Product.AI_AGENT.value) >= 0,
        rng.choice(channel_choices, rows),
        "",
    )
    dates = pd.date_range("2025-01-01", "2026-12-31", periods=120)
    stages = rng.choice(enum_values(Stage), rows).astype(object)
    if invalid_ratio > 0:
        stages[rng.random(rows) < invalid_ratio] = "UNKNOWN"

    # account + summary を一意にして重複判定が起きないようにする
    account_ids = rng.integers(0, accounts, rows)
    data = {
        "Account Name": [f"Account {a:04d}" for a in account_ids],
        "Account Manager Email": rng.choice(emails, rows),
        "Stage": stages,
        "Product": products,
        "Channels": channels,
        "Customer Engineer Email": rng.choice(emails + [""], rows),
        "SPOC": [f"Contact {i}" for i in range(rows)],
        "Priority": rng.choice(enum_values(Priority), rows),
        "Use Case Summary": [f"Use case {i + 1}" for i in range(rows)],
        "Target Date": pd.Series(rng.choice(dates, rows)).dt.strftime("%Y-%m-%d"),
        "Status": rng.choice(enum_values(Status), rows),
        "Jira Ticket": [f"DEL-{1000 + i}" if i % 3 == 0 else "" for i in range(rows)],
    }
    return pd.DataFrame(data, columns=list(CSV_HEADERS)), emails


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a synthetic project CSV for import testing")
    parser.add_argument("output", type=Path, help="Output CSV path")
    parser.add_argument("--rows", type=int, default=5_000, help="Number of data rows (default: 5,000)")
    parser.add_argument("--accounts", type=int, default=200, help="Distinct account names (default: 200)")
    parser.add_argument("--users", type=int, default=20, help="Distinct user emails (default: 20)")
    parser.add_argument("--invalid-ratio", type=float, default=0.0, help="Share of invalid rows (default: 0)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.invalid_ratio <= 1.0:
        print("Error: --invalid-ratio must be between 0 and 1", file=sys.stderr)
        return 1

    df, emails = generate_projects(
        args.rows,
        accounts=args.accounts,
        users=args.users,
        invalid_ratio=args.invalid_ratio,
        seed=args.seed,
    )
    args.output.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(args.output, index=False, lineterminator="\n")
    users_path = args.output.with_suffix(".users.txt")
    users_path.write_text("\n".join(emails) + "\n", encoding="utf-8")

    print(f"Created CSV: {args.output} rows={len(df):,}")
    print(f"User emails: {users_path} ({len(emails)})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
