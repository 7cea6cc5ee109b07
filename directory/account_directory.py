"""Account directory over SQL: users, IGG-ID assignments, subscriptions, activity."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from core.errors import NotFoundError, ValidationError
from directory.schemas import (
    ActivityLogRecord,
    IggAccountRecord,
    SubscriptionRecord,
    UserRecord,
)
from directory.sql_store import SQLStore


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AccountDirectory:
    """Relational lookups the dashboard and the automation queue rely on."""

    def __init__(self, sql_store: SQLStore) -> None:
        self.sql_store = sql_store
        self.sql_store.create_all()

    def identifier_exists(self, igg_id: str) -> bool:
        with self.sql_store.session() as sess:
            row = sess.query(IggAccountRecord.id).filter(IggAccountRecord.igg_id == igg_id).first()
            return row is not None

    def subscription_expired(self, igg_id: str, now: datetime | None = None) -> bool:
        """True only when a subscription exists and its expiry is in the past."""
        now = as_utc(now or datetime.now(UTC))
        with self.sql_store.session() as sess:
            row = (
                sess.query(SubscriptionRecord)
                .filter(SubscriptionRecord.igg_id == igg_id)
                .first()
            )
            if row is None or row.expires_at is None:
                return False
            return as_utc(row.expires_at) < now

    def add_user(self, email: str, name: str = "", role: str = "USER", status: str = "APPROVED") -> dict[str, Any]:
        if not email:
            raise ValidationError("Email is required")
        with self.sql_store.session() as sess:
            row = sess.query(UserRecord).filter(UserRecord.email == email).first()
            if row is None:
                row = UserRecord(email=email, name=name, role=role, status=status)
                sess.add(row)
                sess.flush()
            return self._user_to_dict(row)

    def assign_igg_id(self, igg_id: str, user_email: str | None = None, label: str = "") -> dict[str, Any]:
        """Create the IGG ID if needed and assign it to a user."""
        if not igg_id:
            raise ValidationError("IGG ID is required")
        with self.sql_store.session() as sess:
            user_id = None
            if user_email:
                user = sess.query(UserRecord).filter(UserRecord.email == user_email).first()
                if user is None:
                    raise NotFoundError(f"User {user_email} not found")
                user_id = user.id
            row = sess.query(IggAccountRecord).filter(IggAccountRecord.igg_id == igg_id).first()
            if row is None:
                row = IggAccountRecord(igg_id=igg_id, label=label, user_id=user_id)
                sess.add(row)
            else:
                if user_id is not None:
                    row.user_id = user_id
                if label:
                    row.label = label
            sess.flush()
            return self._account_to_dict(row, None)

    def set_subscription(self, igg_id: str, expires_at: datetime, status: str = "ACTIVE") -> dict[str, Any]:
        if not self.identifier_exists(igg_id):
            raise NotFoundError(f"IGG ID {igg_id} not found")
        with self.sql_store.session() as sess:
            row = (
                sess.query(SubscriptionRecord)
                .filter(SubscriptionRecord.igg_id == igg_id)
                .first()
            )
            if row is None:
                row = SubscriptionRecord(igg_id=igg_id)
                sess.add(row)
            row.expires_at = as_utc(expires_at)
            row.status = status
            sess.flush()
            return {
                "igg_id": row.igg_id,
                "status": row.status,
                "expires_at": as_utc(row.expires_at).isoformat() if row.expires_at else None,
            }

    def touch_sync(self, igg_id: str) -> None:
        with self.sql_store.session() as sess:
            row = sess.query(IggAccountRecord).filter(IggAccountRecord.igg_id == igg_id).first()
            if row is not None:
                row.last_sync = datetime.now(UTC)

    def list_igg_ids(self) -> list[dict[str, Any]]:
        with self.sql_store.session() as sess:
            rows = sess.query(IggAccountRecord).order_by(IggAccountRecord.igg_id).all()
            subs = {s.igg_id: s for s in sess.query(SubscriptionRecord).all()}
            return [self._account_to_dict(row, subs.get(row.igg_id)) for row in rows]

    def log_activity(
        self,
        action: str,
        igg_id: str = "",
        category: str = "",
        details: dict[str, Any] | None = None,
        user_id: int | None = None,
    ) -> None:
        record = ActivityLogRecord(
            action=action,
            igg_id=igg_id,
            category=category,
            details=details or {},
            user_id=user_id,
        )
        with self.sql_store.session() as sess:
            sess.add(record)

    def recent_activity(self, limit: int = 20) -> list[dict[str, Any]]:
        with self.sql_store.session() as sess:
            rows = (
                sess.query(ActivityLogRecord)
                .order_by(ActivityLogRecord.id.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "action": row.action,
                    "igg_id": row.igg_id,
                    "category": row.category,
                    "details": row.details,
                    "user_id": row.user_id,
                    "created_at": as_utc(row.created_at).isoformat(),
                }
                for row in rows
            ]

    @staticmethod
    def _user_to_dict(row: UserRecord) -> dict[str, Any]:
        return {"id": row.id, "email": row.email, "name": row.name, "role": row.role, "status": row.status}

    @staticmethod
    def _account_to_dict(row: IggAccountRecord, sub: SubscriptionRecord | None) -> dict[str, Any]:
        expires = sub.expires_at if sub is not None else None
        return {
            "igg_id": row.igg_id,
            "label": row.label,
            "user_id": row.user_id,
            "last_sync": as_utc(row.last_sync).isoformat() if row.last_sync else None,
            "subscription_expires_at": as_utc(expires).isoformat() if expires else None,
        }
