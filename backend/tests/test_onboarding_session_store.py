"""Tests for the onboarding session store."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from variable_api.core.exceptions import DatabaseError, NotFoundError
from variable_api.onboarding.models import AdvanceSession, OnboardingStatus
from variable_api.onboarding.session_store import OnboardingSessionStore


@pytest.fixture()
def store(fake_db: Any) -> OnboardingSessionStore:
    return OnboardingSessionStore(fake_db)


@pytest.mark.asyncio()
async def test_load_or_create_creates_in_progress_session(
    store: OnboardingSessionStore, fake_db: Any
) -> None:
    session = await store.load_or_create("user-1", "comp-1")

    assert session.user_id == "user-1"
    assert session.company_id == "comp-1"
    assert session.current_step == 1
    assert session.status == OnboardingStatus.IN_PROGRESS
    assert session.session_data == {}
    assert session.completed_at is None
    assert fake_db.count("onboarding_sessions") == 1


@pytest.mark.asyncio()
async def test_load_or_create_resumes_existing(store: OnboardingSessionStore, fake_db: Any) -> None:
    first = await store.load_or_create("user-1", "comp-1")
    await store.save(first.id, 3, {"company_name": "Acme"})

    again = await store.load_or_create("user-1", "comp-1")

    assert again.id == first.id
    assert again.current_step == 3
    assert again.session_data == {"company_name": "Acme"}
    assert fake_db.count("onboarding_sessions") == 1


@pytest.mark.asyncio()
async def test_save_merges_session_data_shallowly(store: OnboardingSessionStore) -> None:
    session = await store.load_or_create("user-1", "comp-1")
    await store.save(session.id, 2, {"a": 1, "b": 2})

    saved = await store.save(session.id, 3, {"b": 3, "c": 4})

    assert saved.session_data == {"a": 1, "b": 3, "c": 4}
    assert saved.current_step == 3


@pytest.mark.asyncio()
async def test_save_stamps_updated_at_and_progress(
    store: OnboardingSessionStore, fake_db: Any
) -> None:
    session = await store.load_or_create("user-1", "comp-1")

    saved = await store.save(session.id, 2)

    row = fake_db.row("onboarding_sessions", id=session.id)
    assert row["updated_at"] is not None
    assert row["progress_percentage"] == 40
    assert saved.progress_percentage == 40


@pytest.mark.asyncio()
async def test_save_never_changes_status(store: OnboardingSessionStore) -> None:
    session = await store.load_or_create("user-1", "comp-1")
    await store.complete(session.id)

    # Direct store misuse can move the step, but cannot reopen the session
    regressed = await store.save(session.id, 2)

    assert regressed.status == OnboardingStatus.COMPLETED
    assert regressed.completed_at is not None


@pytest.mark.asyncio()
async def test_complete_marks_terminal_state(store: OnboardingSessionStore) -> None:
    session = await store.load_or_create("user-1", "comp-1")
    await store.save(session.id, 5, {"company_name": "Acme"})

    completed = await store.complete(session.id, {"agents": ["sales"]})

    assert completed.status == OnboardingStatus.COMPLETED
    assert completed.current_step == 5
    assert completed.completed_at is not None
    assert completed.progress_percentage == 100
    assert completed.session_data == {"company_name": "Acme", "agents": ["sales"]}


@pytest.mark.asyncio()
async def test_apply_dispatches_tagged_write(store: OnboardingSessionStore) -> None:
    session = await store.load_or_create("user-1", "comp-1")

    saved = await store.apply(session.id, AdvanceSession(step=4, session_data={"x": 1}))

    assert saved.current_step == 4
    assert saved.session_data == {"x": 1}


@pytest.mark.asyncio()
async def test_apply_unknown_session_raises(store: OnboardingSessionStore) -> None:
    with pytest.raises(NotFoundError):
        await store.save("missing", 2)


@pytest.mark.asyncio()
async def test_database_failure_raises_database_error(
    store: OnboardingSessionStore, fake_db: Any
) -> None:
    session = await store.load_or_create("user-1", "comp-1")
    fake_db.failures.add(("onboarding_sessions", "update"))

    with pytest.raises(DatabaseError):
        await store.save(session.id, 2)


@pytest.mark.asyncio()
async def test_list_for_company_newest_first(store: OnboardingSessionStore) -> None:
    older = await store.load_or_create("user-1", "comp-1")
    newer = await store.load_or_create("user-2", "comp-1")
    await store.load_or_create("user-3", "comp-2")

    sessions = await store.list_for_company("comp-1")

    assert [s.id for s in sessions] == [newer.id, older.id]


@pytest.mark.asyncio()
async def test_get_for_user_handles_missing_response() -> None:
    db = MagicMock()
    db.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.return_value = None
    store = OnboardingSessionStore(db)

    assert await store.get_for_user("user-1") is None


@pytest.mark.asyncio()
async def test_load_or_create_links_company_onto_unlinked_row(
    store: OnboardingSessionStore, fake_db: Any
) -> None:
    fake_db.table("onboarding_sessions").insert(
        {
            "user_id": "user-1",
            "company_id": None,
            "current_step": 2,
            "status": "in_progress",
            "session_data": {"company_name": "Acme"},
        }
    ).execute()

    session = await store.load_or_create("user-1", "comp-1")

    assert session.company_id == "comp-1"
    assert session.current_step == 2
    assert session.session_data == {"company_name": "Acme"}
    assert fake_db.row("onboarding_sessions", user_id="user-1")["company_id"] == "comp-1"
    assert fake_db.count("onboarding_sessions") == 1


@pytest.mark.asyncio()
async def test_load_or_create_keeps_existing_company_link(
    store: OnboardingSessionStore, fake_db: Any
) -> None:
    await store.load_or_create("user-1", "comp-1")
    calls_before = len(fake_db.calls)

    session = await store.load_or_create("user-1", "comp-2")

    assert session.company_id == "comp-1"
    assert ("onboarding_sessions", "update") not in fake_db.calls[calls_before:]


@pytest.mark.asyncio()
async def test_advance_never_relinks_company(store: OnboardingSessionStore) -> None:
    session = await store.load_or_create("user-1", "comp-1")

    saved = await store.apply(session.id, AdvanceSession(step=2, company_id="comp-2"))

    assert saved.company_id == "comp-1"
