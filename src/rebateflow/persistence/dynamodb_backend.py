"""DynamoDB backends for programs, enrollments, orders and accruals.

All tables use a PK/SK key schema. Accrual upserts, finalization and payout
transitions are single conditional ``update_item`` calls, so the store itself
is the unit of mutual exclusion for a (program, dealer, period_start) key.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from rebateflow.core.clock import ensure_utc, iso_key, utcnow
from rebateflow.core.exceptions import (
    AccrualLockedError,
    DealerNotFoundError,
    EnrollmentError,
    EnrollmentNotFoundError,
    InvalidStateError,
    NotFoundError,
    StoreError,
)
from rebateflow.models.accrual import Accrual, AccrualStatus
from rebateflow.models.enrollment import Enrollment
from rebateflow.models.order import Order
from rebateflow.models.program import Program
from rebateflow.persistence.memory_backend import ACCRUAL_COMPUTED_FIELDS
from rebateflow.persistence.redis_backend import ProgramCache

PROGRAMS_TABLE = "rebateflow-programs"
ENROLLMENTS_TABLE = "rebateflow-enrollments"
ORDERS_TABLE = "rebateflow-orders"
ACCRUALS_TABLE = "rebateflow-accruals"

TABLE_NAMES = (PROGRAMS_TABLE, ENROLLMENTS_TABLE, ORDERS_TABLE, ACCRUALS_TABLE)


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def _to_attr(value: Any) -> Any:
    """Python value -> DynamoDB-safe value (datetimes as sortable strings, no floats)."""
    if isinstance(value, datetime):
        return iso_key(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_attr(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_to_attr(v) for v in value]
    return value


def _to_item(model: Any, **keys: str) -> dict[str, Any]:
    item = {k: _to_attr(v) for k, v in model.model_dump().items() if v is not None}
    item.update(keys)
    return item


def _strip_keys(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if k not in ("PK", "SK")}


class _DynamoDBStore:
    """Shared boto3 wiring and paginated read helpers."""

    table_base: str = ""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None, resource: Any = None) -> None:
        self._table_suffix = table_suffix
        self._region = region
        self._endpoint_url = endpoint_url
        if resource is None:
            kwargs: dict = {"region_name": region}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            resource = boto3.resource("dynamodb", **kwargs)
        self._ddb = resource
        self._table = self._ddb.Table(f"{self.table_base}{table_suffix}")

    def _query(self, **kwargs: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        try:
            while True:
                resp = self._table.query(**kwargs)
                items.extend(resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    return items
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as exc:
            raise StoreError(f"DynamoDB query on {self._table.name} failed: {exc}") from exc

    def _scan(self, **kwargs: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        try:
            while True:
                resp = self._table.scan(**kwargs)
                items.extend(resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    return items
                kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except ClientError as exc:
            raise StoreError(f"DynamoDB scan on {self._table.name} failed: {exc}") from exc

    def _get_item(self, pk: str, sk: str) -> dict[str, Any] | None:
        try:
            return self._table.get_item(Key={"PK": pk, "SK": sk}).get("Item")
        except ClientError as exc:
            raise StoreError(f"DynamoDB get on {self._table.name} failed: {exc}") from exc

    def _put_item(self, item: dict[str, Any], **kwargs: Any) -> None:
        try:
            self._table.put_item(Item=item, **kwargs)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise
            raise StoreError(f"DynamoDB put on {self._table.name} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

class DynamoDBProgramStore(_DynamoDBStore):
    """IProgramStore backed by DynamoDB + optional Redis cache.

    The rule set is stored as the validated JSON document and re-validated on
    every read, so a malformed row fails at the program boundary.
    """

    table_base = PROGRAMS_TABLE

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None, resource: Any = None,
                 cache: ProgramCache | None = None) -> None:
        super().__init__(table_suffix, region, endpoint_url, resource)
        self._cache = cache

    def get_program(self, id_or_code: str) -> Program | None:
        if self._cache is not None:
            cached = self._cache.get(id_or_code)
            if cached is not None:
                return cached

        item = self._get_item(f"PROGRAM#{id_or_code}", "DEFINITION")
        if item is None:
            pointer = self._get_item(f"CODE#{id_or_code}", "PROGRAM")
            if pointer is not None:
                item = self._get_item(f"PROGRAM#{pointer['program_id']}", "DEFINITION")
        if item is None:
            return None

        program = Program.model_validate_json(item["document"])
        if self._cache is not None:
            self._cache.put(id_or_code, item["document"])
        return program

    def save_program(self, program: Program) -> Program:
        document = program.model_dump_json()
        self._put_item({
            "PK": f"PROGRAM#{program.id}", "SK": "DEFINITION",
            "program_id": program.id, "code": program.code,
            "type": str(program.type), "status": str(program.status),
            "start_date": iso_key(program.start_date), "document": document,
        })
        self._put_item({"PK": f"CODE#{program.code}", "SK": "PROGRAM", "program_id": program.id})
        if self._cache is not None:
            self._cache.invalidate(program)
        return program

    def list_programs(self, type: str | None = None, status: str | None = None) -> list[Program]:
        items = self._scan(FilterExpression=Attr("SK").eq("DEFINITION"))
        programs = [Program.model_validate_json(i["document"]) for i in items]
        programs = [
            p for p in programs
            if (type is None or p.type == type) and (status is None or p.status == status)
        ]
        return sorted(programs, key=lambda p: p.start_date, reverse=True)


# ---------------------------------------------------------------------------
# Enrollments
# ---------------------------------------------------------------------------

class DynamoDBEnrollmentStore(_DynamoDBStore):
    """IEnrollmentStore; PK=PROGRAM#{program_id}, SK=DEALER#{dealer_id}."""

    table_base = ENROLLMENTS_TABLE

    @staticmethod
    def _keys(program_id: str, dealer_id: str) -> dict[str, str]:
        return {"PK": f"PROGRAM#{program_id}", "SK": f"DEALER#{dealer_id}"}

    def get_enrollment(self, program_id: str, dealer_id: str) -> Enrollment | None:
        keys = self._keys(program_id, dealer_id)
        item = self._get_item(keys["PK"], keys["SK"])
        return Enrollment.model_validate(_strip_keys(item)) if item else None

    def create_enrollment(self, enrollment: Enrollment) -> Enrollment:
        item = _to_item(enrollment, **self._keys(enrollment.program_id, enrollment.dealer_id))
        try:
            self._put_item(item, ConditionExpression="attribute_not_exists(PK)")
        except ClientError as exc:
            raise EnrollmentError("Dealer is already enrolled in this program") from exc
        return enrollment

    def save_enrollment(self, enrollment: Enrollment) -> Enrollment:
        self._put_item(_to_item(enrollment, **self._keys(enrollment.program_id, enrollment.dealer_id)))
        return enrollment

    def list_enrollments(self, program_id: str, status: str | None = None) -> list[Enrollment]:
        items = self._query(KeyConditionExpression=Key("PK").eq(f"PROGRAM#{program_id}"))
        enrollments = [Enrollment.model_validate(_strip_keys(i)) for i in items]
        return [e for e in enrollments if status is None or e.status == status]

    def list_dealer_enrollments(self, dealer_id: str, status: str | None = None) -> list[Enrollment]:
        items = self._scan(FilterExpression=Attr("dealer_id").eq(dealer_id))
        enrollments = [Enrollment.model_validate(_strip_keys(i)) for i in items]
        enrollments = [e for e in enrollments if status is None or e.status == status]
        return sorted(enrollments, key=lambda e: e.enrolled_at, reverse=True)

    def apply_accrual(
        self, program_id: str, dealer_id: str, tier_achieved: str,
        tier_progress: Decimal, accrued_total: Decimal,
    ) -> Enrollment:
        try:
            resp = self._table.update_item(
                Key=self._keys(program_id, dealer_id),
                UpdateExpression="SET tier_achieved = :tier, tier_progress = :progress, accrued_amount = :total",
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeValues={
                    ":tier": tier_achieved, ":progress": tier_progress, ":total": accrued_total,
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise EnrollmentNotFoundError(program_id, dealer_id) from exc
            raise StoreError(f"Enrollment update failed for {program_id}/{dealer_id}: {exc}") from exc
        return Enrollment.model_validate(_strip_keys(resp["Attributes"]))


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class DynamoDBOrderSource(_DynamoDBStore):
    """IOrderSource; PK=DEALER#{dealer_id}, SK=ORDER#{created_at}#{order_id}.

    A ``PROFILE`` row under the dealer's partition marks the dealer as known.
    """

    table_base = ORDERS_TABLE

    def put_dealer(self, dealer_id: str, **attrs: Any) -> None:
        self._put_item({"PK": f"DEALER#{dealer_id}", "SK": "PROFILE", "dealer_id": dealer_id, **attrs})

    def put_order(self, order: Order) -> Order:
        self._put_item(_to_item(
            order, PK=f"DEALER#{order.dealer_id}", SK=f"ORDER#{iso_key(order.created_at)}#{order.id}",
        ))
        return order

    def list_orders(
        self, dealer_id: str, start: datetime, end: datetime, statuses: Iterable[str],
    ) -> list[Order]:
        if self._get_item(f"DEALER#{dealer_id}", "PROFILE") is None:
            raise DealerNotFoundError(dealer_id)
        items = self._query(
            KeyConditionExpression=Key("PK").eq(f"DEALER#{dealer_id}")
            & Key("SK").between(f"ORDER#{iso_key(start)}", f"ORDER#{iso_key(end)}~"),
        )
        wanted = set(statuses)
        orders = []
        for item in items:
            if item.get("status") not in wanted:
                continue
            data = _strip_keys(item)
            data["items"] = [{**li, "quantity": int(li.get("quantity", 1))} for li in data.get("items", [])]
            orders.append(Order.model_validate(data))
        return orders


# ---------------------------------------------------------------------------
# Accruals
# ---------------------------------------------------------------------------

class DynamoDBAccrualStore(_DynamoDBStore):
    """IAccrualStore; PK=PROGRAM#{program_id}, SK=DEALER#{dealer_id}#PERIOD#{period_start}."""

    table_base = ACCRUALS_TABLE

    @staticmethod
    def _keys(program_id: str, dealer_id: str, period_start: datetime) -> dict[str, str]:
        return {"PK": f"PROGRAM#{program_id}", "SK": f"DEALER#{dealer_id}#PERIOD#{iso_key(period_start)}"}

    @staticmethod
    def _load(item: dict[str, Any]) -> Accrual:
        return Accrual.model_validate(_strip_keys(item))

    def get_accrual(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual | None:
        keys = self._keys(program_id, dealer_id, period_start)
        item = self._get_item(keys["PK"], keys["SK"])
        return self._load(item) if item else None

    def upsert_accrual(self, accrual: Accrual, allow_locked: bool = False) -> tuple[Accrual, Accrual | None]:
        names = {"#status": "status"}
        values: dict[str, Any] = {":calculated": str(AccrualStatus.CALCULATED)}
        sets = []
        for field in ACCRUAL_COMPUTED_FIELDS:
            names[f"#{field}"] = field
            sets.append(f"#{field} = :{field}")
            values[f":{field}"] = _to_attr(getattr(accrual, field))
        for field in ("id", "program_id", "dealer_id", "period_start"):
            names[f"#{field}"] = field
            sets.append(f"#{field} = if_not_exists(#{field}, :{field})")
            values[f":{field}"] = _to_attr(getattr(accrual, field))
        sets.append("#status = if_not_exists(#status, :calculated)")
        names["#period_type"] = "period_type"
        sets.append("#period_type = :period_type")
        values[":period_type"] = str(accrual.period_type)

        kwargs: dict[str, Any] = {
            "Key": self._keys(accrual.program_id, accrual.dealer_id, accrual.period_start),
            "UpdateExpression": "SET " + ", ".join(sets),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_OLD",
        }
        if not allow_locked:
            kwargs["ConditionExpression"] = "attribute_not_exists(PK) OR #status = :calculated"

        try:
            resp = self._table.update_item(**kwargs)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                current = self.get_accrual(accrual.program_id, accrual.dealer_id, accrual.period_start)
                status = current.status if current else "unknown"
                raise AccrualLockedError(accrual.program_id, accrual.dealer_id, accrual.period_start, status) from exc
            raise StoreError(f"Accrual upsert failed for {accrual.key}: {exc}") from exc

        old = resp.get("Attributes")
        if not old:
            return accrual.model_copy(update={"status": AccrualStatus.CALCULATED}), None
        previous = self._load(old)
        stored = previous.model_copy(update={f: getattr(accrual, f) for f in ACCRUAL_COMPUTED_FIELDS})
        return stored, previous

    def list_accruals(self, program_id: str | None = None, dealer_id: str | None = None) -> list[Accrual]:
        if program_id is not None and dealer_id is not None:
            items = self._query(
                KeyConditionExpression=Key("PK").eq(f"PROGRAM#{program_id}")
                & Key("SK").begins_with(f"DEALER#{dealer_id}#PERIOD#")
            )
        elif program_id is not None:
            items = self._query(KeyConditionExpression=Key("PK").eq(f"PROGRAM#{program_id}"))
        else:
            items = self._scan()
        accruals = [self._load(i) for i in items]
        accruals = [a for a in accruals if dealer_id is None or a.dealer_id == dealer_id]
        return sorted(accruals, key=lambda a: (a.period_start, a.dealer_id), reverse=True)

    def _transition(self, accrual: Accrual, from_status: AccrualStatus, to_status: AccrualStatus,
                    stamp_field: str) -> Accrual:
        now = utcnow()
        resp = self._table.update_item(
            Key=self._keys(accrual.program_id, accrual.dealer_id, accrual.period_start),
            UpdateExpression=f"SET #status = :to, {stamp_field} = :now",
            ConditionExpression="attribute_exists(PK) AND #status = :from",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={":to": str(to_status), ":from": str(from_status), ":now": iso_key(now)},
            ReturnValues="ALL_NEW",
        )
        return self._load(resp["Attributes"])

    def finalize_window(self, program_id: str, start: datetime, end: datetime) -> list[Accrual]:
        start, end = ensure_utc(start), ensure_utc(end)
        finalized: list[Accrual] = []
        for accrual in self.list_accruals(program_id=program_id):
            if accrual.status != AccrualStatus.CALCULATED:
                continue
            if accrual.period_start < start or accrual.period_end > end:
                continue
            try:
                finalized.append(self._transition(
                    accrual, AccrualStatus.CALCULATED, AccrualStatus.FINALIZED, "finalized_at",
                ))
            except ClientError as exc:
                if _is_conditional_failure(exc):
                    continue  # finalized concurrently
                raise StoreError(f"Accrual finalize failed for {accrual.key}: {exc}") from exc
        return finalized

    def mark_paid(self, program_id: str, dealer_id: str, period_start: datetime) -> Accrual:
        current = self.get_accrual(program_id, dealer_id, period_start)
        if current is None:
            raise NotFoundError(f"No accrual for program {program_id}, dealer {dealer_id}")
        try:
            return self._transition(current, AccrualStatus.FINALIZED, AccrualStatus.PAID, "paid_at")
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise InvalidStateError(
                    f"Only finalized accruals can be paid (status={current.status})"
                ) from exc
            raise StoreError(f"Accrual payout transition failed: {exc}") from exc

