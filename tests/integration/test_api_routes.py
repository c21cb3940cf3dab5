"""Integration tests for TLDR Bot API routes.

Runs the real FastAPI app against a temporary database.
"""

import os
import pytest
from datetime import timedelta
from unittest.mock import patch

from fastapi.testclient import TestClient

from tldr_bot.api.main import create_app
from tldr_bot.utils.timezone import utcnow

API_SECRET = 'test_api_secret'
HEADERS = {'X-API-Key': API_SECRET}


@pytest.fixture
def client(repo):
    with patch.dict(os.environ, {'API_SECRET': API_SECRET}):
        with TestClient(create_app(db_repo=repo)) as test_client:
            yield test_client


class TestHealth:
    """Tests for /api/health."""

    def test_healthy_without_auth(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'healthy'
        assert body['database'] == 'ok'
        assert isinstance(body['encrypted'], bool)


class TestAuth:
    """Tests for X-API-Key enforcement."""

    def test_missing_key(self, client):
        response = client.get("/api/groups")

        assert response.status_code == 401
        assert "Missing API key" in response.json()['detail']

    def test_wrong_key(self, client):
        response = client.get("/api/groups", headers={'X-API-Key': 'nope'})

        assert response.status_code == 401
        assert response.json()['detail'] == "Invalid API key"

    def test_prefix_of_secret_rejected_and_logged(self, client, caplog):
        with caplog.at_level('WARNING', logger='tldr_bot.api.auth'):
            response = client.get("/api/groups", headers={'X-API-Key': API_SECRET[:-1]})

        assert response.status_code == 401
        assert "invalid API key" in caplog.text
        assert API_SECRET[:-1] not in caplog.text

    def test_open_when_no_secret_configured(self, repo):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('API_SECRET', None)
            response = TestClient(create_app(db_repo=repo)).get("/api/groups")

        assert response.status_code == 200


class TestGroups:
    """Tests for /api/groups."""

    def test_list(self, client, repo, active_group):
        repo.create_group_config(-200)
        repo.upsert_message(-100, 1, "hello")

        response = client.get("/api/groups", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body['total'] == 2
        by_chat = {g['chat_id']: g for g in body['groups']}
        assert by_chat[-100]['status'] == 'active'
        assert by_chat[-100]['cached_messages'] == 1
        assert by_chat[-200]['status'] == 'pending'

    def test_get_includes_settings(self, client, active_group):
        response = client.get("/api/groups/-100", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body['setup_by_user_id'] == 42
        assert body['settings']['summary_style'] == 'default'
        assert body['settings']['schedule_time'] == '09:00'

    def test_get_missing(self, client):
        response = client.get("/api/groups/-999", headers=HEADERS)

        assert response.status_code == 404

    def test_update_settings(self, client, repo, active_group):
        response = client.patch(
            "/api/groups/-100/settings",
            headers=HEADERS,
            json={
                'summary_style': 'brief',
                'exclude_user_ids': [5, 6],
                'schedule_enabled': True,
                'schedule_frequency': 'weekly',
                'schedule_time': '7:30',
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body['summary_style'] == 'brief'
        assert body['excluded_user_ids'] == [5, 6]
        assert body['schedule_time'] == '07:30'

        settings = repo.get_group_settings(-100)
        assert settings.schedule_enabled is True
        assert settings.schedule_frequency == 'weekly'

    def test_partial_update_keeps_other_settings(self, client, repo, active_group):
        repo.update_group_settings(-100, summary_style='timeline', custom_prompt="P {{messages}}")

        response = client.patch("/api/groups/-100/settings", headers=HEADERS, json={'exclude_commands': False})

        body = response.json()
        assert body['summary_style'] == 'timeline'
        assert body['custom_prompt'] == "P {{messages}}"
        assert body['exclude_commands'] is False

    def test_clear_custom_prompt(self, client, repo, active_group):
        repo.update_group_settings(-100, custom_prompt="P {{messages}}")

        response = client.patch("/api/groups/-100/settings", headers=HEADERS, json={'clear_custom_prompt': True})

        assert response.json()['custom_prompt'] is None

    @pytest.mark.parametrize("payload", [
        {'summary_style': 'poetic'},
        {'schedule_time': '25:00'},
        {'schedule_frequency': 'monthly'},
    ])
    def test_invalid_settings_rejected(self, client, repo, active_group, payload):
        response = client.patch("/api/groups/-100/settings", headers=HEADERS, json=payload)

        assert response.status_code == 400
        assert repo.get_group_settings(-100).summary_style == 'default'

    def test_update_settings_missing_group(self, client):
        response = client.patch("/api/groups/-999/settings", headers=HEADERS, json={'summary_style': 'brief'})

        assert response.status_code == 404

    def test_set_enabled(self, client, repo, active_group):
        response = client.post("/api/groups/-100/enabled", headers=HEADERS, json={'enabled': False})

        assert response.status_code == 200
        assert response.json()['status'] == 'disabled'
        assert repo.get_group_config(-100).enabled is False

    def test_set_enabled_missing_group(self, client):
        response = client.post("/api/groups/-999/enabled", headers=HEADERS, json={'enabled': True})

        assert response.status_code == 404

    def test_summaries(self, client, repo, active_group):
        end = utcnow()
        repo.upsert_summary(-100, "older", 3, end - timedelta(hours=5), end - timedelta(hours=4))
        repo.upsert_summary(-100, "newer", 4, end - timedelta(hours=2), end - timedelta(hours=1))

        response = client.get("/api/groups/-100/summaries?limit=1", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body['total'] == 1
        assert body['summaries'][0]['message_count'] in (3, 4)


class TestStats:
    """Tests for /api/stats."""

    def test_stats(self, client, repo, active_group):
        repo.upsert_message(-100, 1, "a")
        repo.upsert_message(-100, 2, "b")

        response = client.get("/api/stats", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body['total_messages'] == 2
        assert body['active_groups'] == 1
        assert body['messages_by_chat'] == {'-100': 2}
