"""Create the RebateFlow DynamoDB tables and load a sample rebate program.

Usage:
    python scripts/seed_dynamodb.py --endpoint-url http://localhost:4566
"""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import boto3

from rebateflow.models.enrollment import Enrollment, EnrollmentStatus
from rebateflow.models.order import Order, OrderItem
from rebateflow.models.program import Program, ProgramStatus, parse_rules
from rebateflow.persistence.dynamodb_backend import (
    TABLE_NAMES,
    DynamoDBEnrollmentStore,
    DynamoDBOrderSource,
    DynamoDBProgramStore,
)

SAMPLE_DEALERS = ("DLR-001", "DLR-002", "DLR-003")

SAMPLE_RULES: dict[str, Any] = {
    "kind": "tiered",
    "tiers": [
        {"name": "Starter", "min_volume": "0", "rate": "0.01"},
        {"name": "Growth", "min_volume": "10000", "rate": "0.03"},
        {"name": "Gold", "min_volume": "50000", "rate": "0.05"},
    ],
    "max_payout_per_dealer": "500",
    "excluded_products": ["accessories"],
}


def create_tables(ddb: Any, suffix: str = "") -> None:
    """Create all 4 DynamoDB tables. Skips if table already exists."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])

    for name in TABLE_NAMES:
        table_name = f"{name}{suffix}"
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        print(f"  Created table {table_name}")


def seed_sample_data(ddb: Any, suffix: str = "", now: datetime | None = None) -> Program:
    """Seed one active tiered rebate program, three enrolled dealers and their orders."""
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    programs = DynamoDBProgramStore(table_suffix=suffix, resource=ddb)
    enrollments = DynamoDBEnrollmentStore(table_suffix=suffix, resource=ddb)
    orders = DynamoDBOrderSource(table_suffix=suffix, resource=ddb)

    program = programs.get_program("VOL-REBATE")
    if program is None:
        program = Program(
            code="VOL-REBATE",
            name="Volume Rebate",
            description="Quarterly volume rebate for authorized dealers",
            status=ProgramStatus.ACTIVE,
            start_date=datetime(now.year, 1, 1, tzinfo=timezone.utc),
            rules=parse_rules(SAMPLE_RULES),
            requires_approval=False,
            created_by="seed",
        )
        programs.save_program(program)
    print(f"  Seeded program {program.code} ({program.id})")

    volumes = (Decimal("4000"), Decimal("25000"), Decimal("60000"))
    for n, (dealer_id, volume) in enumerate(zip(SAMPLE_DEALERS, volumes), start=1):
        orders.put_dealer(dealer_id, name=f"Sample Dealer {n}")
        orders.put_order(Order(
            id=f"ORD-{dealer_id}-1",
            dealer_id=dealer_id,
            status="delivered",
            created_at=month_start.replace(day=2),
            items=[
                OrderItem(product_id="P-100", category_id="equipment", quantity=1, total_price=volume),
                OrderItem(product_id="P-900", category_id="accessories", quantity=4, total_price=Decimal("250")),
            ],
        ))
        if enrollments.get_enrollment(program.id, dealer_id) is None:
            enrollments.create_enrollment(Enrollment(
                program_id=program.id,
                dealer_id=dealer_id,
                status=EnrollmentStatus.ACTIVE,
                enrolled_at=month_start,
                approved_at=month_start,
                approved_by="seed",
            ))
    print(f"  Seeded {len(SAMPLE_DEALERS)} dealers with orders and enrollments")
    return program


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed DynamoDB tables for RebateFlow")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    parser.add_argument("--tables-only", action="store_true", help="Create tables without sample data")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, suffix=args.table_suffix)

    if not args.tables_only:
        print("Seeding data...")
        seed_sample_data(ddb, suffix=args.table_suffix)

    print("Done!")


if __name__ == "__main__":
    main()
