"""Staff endpoints: caller context, document requests, documents, campaigns."""

import io
import uuid

import pytest
from sqlalchemy import func, select

from taxdesk.db.models import ActivityLog, Document, DocumentRequest, DocumentRequestItem, Task
from taxdesk.services import document_request_service, storage_service
from taxdesk.services.document_request_service import ChecklistItemInput, UploadedFileMeta


# =============================================================================
# Caller context
# =============================================================================

@pytest.mark.asyncio
async def test_missing_org_header_is_unauthenticated(client, tax_client):
    response = await client.get(f"/document-requests/{uuid.uuid4()}")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_org_is_forbidden(client):
    response = await client.get(
        f"/document-requests/{uuid.uuid4()}",
        headers={"X-Organization-ID": str(uuid.uuid4())},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_user_from_other_org_is_forbidden(client, org):
    response = await client.get(
        f"/document-requests/{uuid.uuid4()}",
        headers={"X-Organization-ID": str(org.id), "X-User-ID": str(uuid.uuid4())},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_malformed_org_header_is_bad_request(client):
    response = await client.get(
        f"/document-requests/{uuid.uuid4()}", headers={"X-Organization-ID": "nope"}
    )
    assert response.status_code == 400


# =============================================================================
# Document requests
# =============================================================================

@pytest.mark.asyncio
async def test_create_document_request_with_task_and_email(staff_client, db, tax_client, email_sender):
    response = await staff_client.post(
        f"/clients/{tax_client.id}/document-requests",
        json={"items": [{"name": "W-2"}, {"name": "1099-INT", "description": "Bank interest"}]},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert [i["name"] for i in data["items"]] == ["W-2", "1099-INT"]
    assert all(i["status"] == "pending" for i in data["items"])

    request = db.get(DocumentRequest, uuid.UUID(data["id"]))
    assert data["upload_url"] == f"https://app.example.com/upload/{request.token}"

    task = db.get(Task, uuid.UUID(data["task_id"]))
    assert task.title == "Collect 2 documents from Ann"
    assert task.priority == "high"

    message, key = email_sender.sent[0]
    assert message.to == "ann@example.com"
    assert key == f"document-request/{request.id}"
    assert request.token in message.html
    assert "W-2" in message.text


@pytest.mark.asyncio
async def test_create_without_task_or_email(staff_client, db, tax_client, email_sender):
    response = await staff_client.post(
        f"/clients/{tax_client.id}/document-requests",
        json={"items": [{"name": "W-2"}], "create_task": False, "send_email": False},
    )

    assert response.status_code == 201
    assert response.json()["task_id"] is None
    assert email_sender.sent == []
    assert db.scalar(select(func.count()).select_from(Task)) == 0


@pytest.mark.asyncio
async def test_create_for_client_without_email_is_rejected(staff_client, db, make_client):
    no_email = make_client(email=None)

    response = await staff_client.post(
        f"/clients/{no_email.id}/document-requests", json={"items": [{"name": "W-2"}]}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Client has no email address"
    assert db.scalar(select(func.count()).select_from(DocumentRequest)) == 0


@pytest.mark.asyncio
async def test_create_with_empty_checklist_is_rejected(staff_client, tax_client):
    response = await staff_client.post(
        f"/clients/{tax_client.id}/document-requests", json={"items": []}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No documents specified"


@pytest.mark.asyncio
async def test_email_failure_rolls_back_request(staff_client, db, tax_client, email_sender):
    email_sender.fail_all = True

    response = await staff_client.post(
        f"/clients/{tax_client.id}/document-requests", json={"items": [{"name": "W-2"}]}
    )

    assert response.status_code == 502
    assert db.scalar(select(func.count()).select_from(DocumentRequest)) == 0
    assert db.scalar(select(func.count()).select_from(Task)) == 0


@pytest.mark.asyncio
async def test_request_of_other_org_is_not_found(staff_client, db, tax_client):
    from taxdesk.db.models import Client, Organization

    other_org = Organization(name="Other", slug="other-org")
    db.add(other_org)
    db.flush()
    other_client = Client(organization_id=other_org.id, first_name="Zed", last_name="Q")
    db.add(other_client)
    db.commit()
    request = document_request_service.create_request(
        db,
        org_id=other_org.id,
        client_id=other_client.id,
        items=[ChecklistItemInput(name="W-2")],
        created_by_user_id=None,
    )
    db.commit()

    response = await staff_client.get(f"/document-requests/{request.id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_remind_lists_missing_items(staff_client, db, org, tax_client, email_sender):
    request = document_request_service.create_request(
        db,
        org_id=org.id,
        client_id=tax_client.id,
        items=[ChecklistItemInput(name="W-2"), ChecklistItemInput(name="1098")],
        created_by_user_id=None,
    )
    db.commit()
    document_request_service.record_upload(
        db,
        request.token,
        request.items[0].id,
        UploadedFileMeta(storage_path="k", file_name="w2.pdf", mime_type="application/pdf", size=3),
    )

    response = await staff_client.post(f"/document-requests/{request.id}/remind")

    assert response.status_code == 200
    assert response.json() == {"sent": True, "missing": ["1098"]}
    message, _ = email_sender.sent[0]
    assert "1098" in message.text
    assert "W-2" not in message.text
    kinds = db.scalars(select(ActivityLog.kind)).all()
    assert "email_sent" in kinds


@pytest.mark.asyncio
async def test_remind_when_complete_conflicts(staff_client, db, org, tax_client):
    request = document_request_service.create_request(
        db,
        org_id=org.id,
        client_id=tax_client.id,
        items=[ChecklistItemInput(name="W-2")],
        created_by_user_id=None,
    )
    db.commit()
    document_request_service.record_upload(
        db,
        request.token,
        request.items[0].id,
        UploadedFileMeta(storage_path="k", file_name="w2.pdf", mime_type="application/pdf", size=3),
    )

    response = await staff_client.post(f"/document-requests/{request.id}/remind")
    assert response.status_code == 409


# =============================================================================
# Documents
# =============================================================================

@pytest.fixture
def stored_document(db, org, tax_client, local_storage):
    key = "document-requests/abc/1-w2.pdf"
    storage_service.store_file(key, io.BytesIO(b"%PDF"), "application/pdf")
    document = Document(
        organization_id=org.id,
        client_id=tax_client.id,
        name="w2.pdf",
        storage_path=key,
        mime_type="application/pdf",
        file_size=4,
    )
    db.add(document)
    db.commit()
    return document


@pytest.mark.asyncio
async def test_download_url(staff_client, stored_document):
    response = await staff_client.get(f"/documents/{stored_document.id}/download")

    assert response.status_code == 200
    assert response.json()["download_url"].endswith(stored_document.storage_path)


@pytest.mark.asyncio
async def test_delete_document_removes_object_and_unlinks_item(
    staff_client, db, org, tax_client, stored_document, local_storage
):
    request = document_request_service.create_request(
        db,
        org_id=org.id,
        client_id=tax_client.id,
        items=[ChecklistItemInput(name="W-2")],
        created_by_user_id=None,
    )
    item = request.items[0]
    item.document_id = stored_document.id
    db.commit()

    response = await staff_client.delete(f"/documents/{stored_document.id}")

    assert response.status_code == 204
    assert not (local_storage / stored_document.storage_path).exists()
    db.expire_all()
    assert db.get(Document, stored_document.id) is None
    assert db.get(DocumentRequestItem, item.id).document_id is None


@pytest.mark.asyncio
async def test_delete_unknown_document_is_not_found(staff_client):
    response = await staff_client.delete(f"/documents/{uuid.uuid4()}")
    assert response.status_code == 404


# =============================================================================
# Drip campaign controls
# =============================================================================

@pytest.mark.asyncio
async def test_campaign_start_and_stats(staff_client, tax_client, email_sender):
    started = await staff_client.post("/drip-campaigns/tax_season_2025/start")

    assert started.status_code == 200
    assert started.json() == {
        "enrolled": 1,
        "failed": 0,
        "total": 1,
        "remaining": 0,
        "errors": [],
    }

    stats = await staff_client.get("/drip-campaigns/tax_season_2025")
    data = stats.json()
    assert data["total"] == 1
    assert data["by_status"]["active"] == 1
    assert data["active_by_stage"]["stage1"] == 1
    assert data["not_enrolled"] == 0


@pytest.mark.asyncio
async def test_campaign_pause_resume_unsubscribe(staff_client, tax_client):
    await staff_client.post("/drip-campaigns/tax_season_2025/start")

    paused = await staff_client.post("/drip-campaigns/tax_season_2025/pause")
    assert paused.json() == {"updated": 1}

    resumed = await staff_client.post("/drip-campaigns/tax_season_2025/resume")
    assert resumed.json() == {"updated": 1}

    unsubscribed = await staff_client.post(
        "/drip-campaigns/tax_season_2025/unsubscribe", json={"client_id": str(tax_client.id)}
    )
    assert unsubscribed.json() == {"updated": 1}


@pytest.mark.asyncio
async def test_unsubscribe_without_enrollment_is_not_found(staff_client, tax_client):
    response = await staff_client.post(
        "/drip-campaigns/tax_season_2025/unsubscribe", json={"client_id": str(tax_client.id)}
    )
    assert response.status_code == 404
