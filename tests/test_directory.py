"""Account directory and admission policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from core.errors import NotFoundError, SubscriptionExpired, ValidationError
from directory.account_directory import AccountDirectory
from directory.sql_store import SQLStore
from governance.subscription_policy import SubscriptionPolicy
from settings_store.file_store import SettingsStore


@pytest.fixture
def directory(tmp_path: Path) -> AccountDirectory:
    store = SQLStore(tmp_path / "db" / "dashboard.db")
    yield AccountDirectory(store)
    store.dispose()


def test_assign_and_list_igg_ids(directory: AccountDirectory) -> None:
    directory.add_user("player@example.com", name="Player")
    directory.assign_igg_id("555", user_email="player@example.com", label="Main")

    rows = directory.list_igg_ids()

    assert [row["igg_id"] for row in rows] == ["555"]
    assert rows[0]["label"] == "Main"
    assert rows[0]["user_id"] is not None
    assert directory.identifier_exists("555")
    assert not directory.identifier_exists("556")


def test_assign_to_unknown_user_fails(directory: AccountDirectory) -> None:
    with pytest.raises(NotFoundError):
        directory.assign_igg_id("555", user_email="ghost@example.com")
    with pytest.raises(ValidationError):
        directory.add_user("")


def test_subscription_expiry(directory: AccountDirectory) -> None:
    directory.assign_igg_id("555")
    now = datetime(2025, 1, 1, tzinfo=UTC)
    assert directory.subscription_expired("555", now=now) is False

    directory.set_subscription("555", now - timedelta(days=1))
    assert directory.subscription_expired("555", now=now) is True

    directory.set_subscription("555", now + timedelta(days=30))
    assert directory.subscription_expired("555", now=now) is False


def test_set_subscription_requires_known_identifier(directory: AccountDirectory) -> None:
    with pytest.raises(NotFoundError):
        directory.set_subscription("404", datetime.now(UTC))


def test_touch_sync_and_activity_log(directory: AccountDirectory) -> None:
    directory.assign_igg_id("555")
    directory.touch_sync("555")
    directory.log_activity("UPDATE_SETTING", igg_id="555", category="gathering", details={"path": "gathering.on"})

    assert directory.list_igg_ids()[0]["last_sync"] is not None
    activity = directory.recent_activity(limit=5)
    assert activity[0]["action"] == "UPDATE_SETTING"
    assert activity[0]["details"] == {"path": "gathering.on"}


def test_policy_rejects_unknown_and_expired(directory: AccountDirectory, tmp_path: Path) -> None:
    policy = SubscriptionPolicy(directory, SettingsStore(tmp_path / "bot_config"))
    directory.assign_igg_id("555")

    with pytest.raises(NotFoundError):
        policy.admit("404")

    policy.admit("555")

    directory.set_subscription("555", datetime.now(UTC) - timedelta(hours=1))
    with pytest.raises(SubscriptionExpired, match="Subscription expired"):
        policy.admit("555")
    assert policy.check("555").status_code == 403


def test_policy_admits_settings_folders(directory: AccountDirectory, tmp_path: Path) -> None:
    root = tmp_path / "bot_config"
    (root / "777").mkdir(parents=True)

    assert SubscriptionPolicy(directory, SettingsStore(root)).is_known("777")
    assert not SubscriptionPolicy(directory, SettingsStore(root), admit_settings_folders=False).is_known("777")
