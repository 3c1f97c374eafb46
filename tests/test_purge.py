"""
Tests for the purge of soft-deleted accounts.

Tests:
- Retention window selection
- Cascade through responses, prompts and blobs
- Idempotency and partial failure
- GET /auth/process-deletions and the scheduled Celery task
"""

import uuid
from datetime import timedelta

import pytest

from codex import crud
from codex.core.celery_app import celery_app
from codex.core.config import settings
from codex.core.purge import RETENTION_DAYS, find_expired_accounts, purge_expired_accounts
from codex.core.storage import BlobStorageError
from codex.core.verification import utcnow
from codex.models.prompt import Prompt
from codex.models.response import Response
from codex.models.user import User
from codex.tasks.account_tasks import purge_expired_accounts_task
from conftest import STRONG_PASSWORD, TestingSessionLocal


def _user_with_content(db_session, blob_storage, email="p@x.com", username="puser", prompts=2, responses=2):
    user = crud.user.create(db_session, email=email, username=username, password=STRONG_PASSWORD)
    for i in range(prompts):
        prompt = Prompt(
            id=uuid.uuid4(),
            user_id=user.id,
            title=f"Prompt {i}",
            content_preview="Explain",
            content_blob_key=blob_storage.put_content(f"Explain topic {i}", prefix="prompt"),
        )
        db_session.add(prompt)
        db_session.flush()
        for j in range(responses):
            db_session.add(Response(
                id=uuid.uuid4(),
                prompt_id=prompt.id,
                model_name=f"model-{j}",
                content_preview="Answer",
                content_blob_key=blob_storage.put_content(f"Answer {i}.{j}", prefix="response"),
            ))
    db_session.commit()
    return user


def _blob_keys(db_session, user_id):
    keys = [p.content_blob_key for p in db_session.query(Prompt).filter(Prompt.user_id == user_id)]
    for prompt in db_session.query(Prompt).filter(Prompt.user_id == user_id):
        keys.extend(r.content_blob_key for r in db_session.query(Response).filter(Response.prompt_id == prompt.id))
    return keys


class TestPurgeSelection:

    def test_nothing_purged_right_after_delete(self, db_session, blob_storage):
        user = _user_with_content(db_session, blob_storage)
        now = utcnow()
        crud.user.mark_for_deletion(db_session, user, now)

        assert purge_expired_accounts(db_session, blob_storage, now=now) == 0
        assert db_session.query(User).count() == 1

    def test_not_purged_just_inside_retention(self, db_session, blob_storage):
        user = _user_with_content(db_session, blob_storage)
        now = utcnow()
        crud.user.mark_for_deletion(db_session, user, now - timedelta(days=RETENTION_DAYS) + timedelta(minutes=1))

        assert find_expired_accounts(db_session, now) == []

    def test_active_users_never_selected(self, db_session, blob_storage):
        _user_with_content(db_session, blob_storage)

        assert purge_expired_accounts(db_session, blob_storage, now=utcnow() + timedelta(days=30)) == 0


class TestPurgeCascade:

    def test_purges_user_prompts_responses_and_blobs(self, db_session, blob_storage):
        user = _user_with_content(db_session, blob_storage)
        user_id = user.id
        keys = _blob_keys(db_session, user_id)
        assert len(keys) == 6

        crud.user.mark_for_deletion(db_session, user, utcnow() - timedelta(days=8))

        assert purge_expired_accounts(db_session, blob_storage) == 1

        db_session.expire_all()
        assert db_session.query(User).filter(User.id == user_id).first() is None
        assert db_session.query(Prompt).count() == 0
        assert db_session.query(Response).count() == 0
        assert all(blob_storage.get_content(key) is None for key in keys)

    def test_other_users_untouched(self, db_session, blob_storage):
        doomed = _user_with_content(db_session, blob_storage)
        keeper = _user_with_content(db_session, blob_storage, email="k@x.com", username="keeper")
        keeper_keys = _blob_keys(db_session, keeper.id)

        crud.user.mark_for_deletion(db_session, doomed, utcnow() - timedelta(days=8))
        purge_expired_accounts(db_session, blob_storage)

        db_session.expire_all()
        assert db_session.query(User).filter(User.id == keeper.id).first() is not None
        assert db_session.query(Prompt).filter(Prompt.user_id == keeper.id).count() == 2
        assert all(blob_storage.get_content(key) is not None for key in keeper_keys)

    def test_second_run_is_noop(self, db_session, blob_storage):
        user = _user_with_content(db_session, blob_storage)
        crud.user.mark_for_deletion(db_session, user, utcnow() - timedelta(days=8))

        assert purge_expired_accounts(db_session, blob_storage) == 1
        assert purge_expired_accounts(db_session, blob_storage) == 0

    def test_missing_blob_is_not_an_error(self, db_session, blob_storage):
        user = _user_with_content(db_session, blob_storage, prompts=1, responses=0)
        for key in _blob_keys(db_session, user.id):
            blob_storage.delete_content(key)
        crud.user.mark_for_deletion(db_session, user, utcnow() - timedelta(days=8))

        assert purge_expired_accounts(db_session, blob_storage) == 1

    def test_blob_failure_does_not_block_purge(self, db_session, blob_storage, monkeypatch):
        user = _user_with_content(db_session, blob_storage, prompts=1, responses=1)
        user_id = user.id
        crud.user.mark_for_deletion(db_session, user, utcnow() - timedelta(days=8))

        def failing_delete(key):
            raise BlobStorageError("bucket unavailable")

        monkeypatch.setattr(blob_storage, "delete_content", failing_delete)

        assert purge_expired_accounts(db_session, blob_storage) == 1
        db_session.expire_all()
        assert db_session.query(User).filter(User.id == user_id).first() is None


class TestProcessDeletionsEndpoint:

    def test_process_deletions(self, client, db_session, blob_storage):
        user = _user_with_content(db_session, blob_storage)
        crud.user.mark_for_deletion(db_session, user, utcnow() - timedelta(days=8))

        response = client.get("/auth/process-deletions")

        assert response.status_code == 200
        assert response.json() == {"deletedCount": 1}

        response = client.get("/api/auth/process-deletions")
        assert response.json() == {"deletedCount": 0}

    def test_cron_secret_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

        assert client.get("/auth/process-deletions").status_code == 401
        assert client.get("/auth/process-deletions", headers={"X-Cron-Secret": "nope"}).status_code == 401

        response = client.get("/auth/process-deletions", headers={"X-Cron-Secret": "s3cret"})
        assert response.status_code == 200
        assert response.json() == {"deletedCount": 0}


class TestScheduledPurge:

    def test_beat_schedule_runs_daily_purge(self):
        entry = celery_app.conf.beat_schedule["purge-expired-accounts"]

        assert entry["task"] == "purge_expired_accounts"
        assert entry["schedule"].hour == {3}
        assert entry["schedule"].minute == {0}

    def test_task_purges_expired_accounts(self, db_session, blob_storage, monkeypatch):
        user = _user_with_content(db_session, blob_storage)
        crud.user.mark_for_deletion(db_session, user, utcnow() - timedelta(days=8))

        monkeypatch.setattr("codex.core.database.SessionLocal", TestingSessionLocal)
        monkeypatch.setattr("codex.core.storage.get_storage", lambda: blob_storage)

        result = purge_expired_accounts_task()

        assert result == {"status": "success", "deleted_count": 1}

    @pytest.mark.parametrize("days_ago,expected", [(6, 0), (7, 1), (30, 1)])
    def test_retention_boundary(self, db_session, blob_storage, days_ago, expected):
        user = _user_with_content(db_session, blob_storage, prompts=0)
        now = utcnow()
        crud.user.mark_for_deletion(db_session, user, now - timedelta(days=days_ago))

        assert purge_expired_accounts(db_session, blob_storage, now=now) == expected
