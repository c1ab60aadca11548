from datetime import datetime

import pytest

from cleanops.models import ActivityLog
from cleanops.services.activity_logger import log_activity


@pytest.fixture
def logs(db, admin_user, cleaner_user):
    rows = [
        ActivityLog(action_type="booking_created", entity_type="booking", entity_id="1",
                    user_id=admin_user.id, created_at=datetime(2030, 3, 1, 9, 0)),
        ActivityLog(action_type="booking_completed", entity_type="booking", entity_id="1",
                    user_id=cleaner_user.id, created_at=datetime(2030, 3, 2, 9, 0)),
        ActivityLog(action_type="customer_deleted", entity_type="customer", entity_id="7",
                    user_id=admin_user.id, created_at=datetime(2030, 3, 3, 9, 0)),
    ]
    db.add_all(rows)
    db.commit()
    return rows


def test_log_activity_stores_entity_id_as_text(db):
    entry = log_activity(db, "invoice_sent", entity_type="booking", entity_id=15, details={"invoice_id": "inv_1"})

    assert entry.entity_id == "15"
    assert entry.details == {"invoice_id": "inv_1"}


def test_newest_first_with_total(client, admin_headers, logs):
    response = client.get("/activity-logs", headers=admin_headers)

    body = response.json()
    assert body["total"] == 3
    assert [item["action_type"] for item in body["items"]] == [
        "customer_deleted",
        "booking_completed",
        "booking_created",
    ]


def test_filters(client, admin_headers, cleaner_user, logs):
    by_entity = client.get("/activity-logs", headers=admin_headers, params={"entity_type": "booking", "entity_id": "1"})
    by_user = client.get("/activity-logs", headers=admin_headers, params={"user_id": cleaner_user.id})
    by_date = client.get(
        "/activity-logs",
        headers=admin_headers,
        params={"date_from": "2030-03-02T00:00:00", "date_to": "2030-03-02T23:59:59"},
    )

    assert by_entity.json()["total"] == 2
    assert [i["action_type"] for i in by_user.json()["items"]] == ["booking_completed"]
    assert [i["action_type"] for i in by_date.json()["items"]] == ["booking_completed"]


def test_pagination(client, admin_headers, logs):
    response = client.get("/activity-logs", headers=admin_headers, params={"page": 2, "page_size": 2})

    body = response.json()
    assert body["total"] == 3
    assert body["page"] == 2
    assert [i["action_type"] for i in body["items"]] == ["booking_created"]


def test_action_types(client, admin_headers, logs):
    response = client.get("/activity-logs/action-types", headers=admin_headers)
    assert response.json() == ["booking_completed", "booking_created", "customer_deleted"]


def test_requires_admin(client, customer_headers):
    assert client.get("/activity-logs", headers=customer_headers).status_code == 403
