"""
Tests for the shareable link endpoints.
"""
import pytest
from datetime import timedelta
from sqlalchemy import select
from tellus_crm.models.audit_log import AuditLog, ActionType, UserType
from tellus_crm.models.shareable_link import ShareableLink
from tellus_crm.models.mixins import utcnow
from tellus_crm.services.link_service import LinkLifecycleService, generate_link_id


async def make_link(db, customer, user, permissions=None, document_ids=None, max_access=None, now=None, hours=24):
    return await LinkLifecycleService.create_share_link(
        db,
        customer_id=customer.id,
        created_by=user.id,
        expires_in_hours=hours,
        permissions=permissions or {"viewPersonalData": True},
        document_ids=document_ids,
        max_access=max_access,
        now=now
    )


@pytest.fixture
async def document_link(db_session, customer, user):
    documents = customer.uploaded_documents
    return await make_link(
        db_session,
        customer,
        user,
        permissions={"viewPersonalData": True, "viewDocuments": True},
        document_ids=[documents[1]["id"], documents[0]["id"]]
    )


class TestCreateShareLink:
    """Tests for POST /api/sharing/create."""

    async def test_create_link(self, async_client, auth_headers, customer):
        document_id = customer.uploaded_documents[0]["id"]
        response = await async_client.post(
            "/api/sharing/create",
            headers=auth_headers,
            json={
                "customerId": customer.id,
                "expiresInHours": 48,
                "maxAccess": 10,
                "permissions": {"viewPersonalData": True, "viewDocuments": True},
                "documentIds": [document_id],
            }
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert len(data["id"]) >= 43
        assert data["accessCount"] == 0
        assert data["maxAccess"] == 10
        assert data["permissions"]["viewAddress"] is False
        assert data["documents"] == [{"id": document_id, "fileName": "rg.pdf", "documentType": "rg"}]

    async def test_create_requires_auth(self, async_client, customer):
        response = await async_client.post(
            "/api/sharing/create",
            json={"customerId": customer.id, "expiresInHours": 1, "permissions": {}}
        )

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_create_rejects_foreign_document(self, async_client, auth_headers, customer):
        response = await async_client.post(
            "/api/sharing/create",
            headers=auth_headers,
            json={
                "customerId": customer.id,
                "expiresInHours": 1,
                "permissions": {"viewDocuments": True},
                "documentIds": ["00000000000/other.pdf"],
            }
        )

        assert response.status_code == 400

    async def test_create_rejects_non_positive_lifetime(self, async_client, auth_headers, customer):
        response = await async_client.post(
            "/api/sharing/create",
            headers=auth_headers,
            json={"customerId": customer.id, "expiresInHours": 0, "permissions": {}}
        )

        assert response.status_code == 400
        assert "expiresInHours" in response.json()["error"]

    async def test_create_unknown_customer(self, async_client, auth_headers, customer):
        response = await async_client.post(
            "/api/sharing/create",
            headers=auth_headers,
            json={"customerId": customer.id + 1, "expiresInHours": 1, "permissions": {}}
        )

        assert response.status_code == 404


class TestResolveShareLink:
    """Tests for GET /api/sharing/{link_id}."""

    async def test_view_projects_customer(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user, permissions={"viewPersonalData": True})

        response = await async_client.get(f"/api/sharing/{link.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["accessCount"] == 1
        assert data["timeRemaining"] > 0
        assert data["customer"]["name"] == customer.name
        assert "address" not in data["customer"]
        assert "monthlyIncome" not in data["customer"]
        assert "uploadedDocuments" not in data["customer"]

    async def test_view_documents_in_link_order(self, async_client, document_link, customer):
        response = await async_client.get(f"/api/sharing/{document_link.id}")

        documents = response.json()["data"]["customer"]["uploadedDocuments"]
        assert [doc["fileName"] for doc in documents] == ["cnh.png", "rg.pdf"]

    async def test_unknown_link(self, async_client, db_session):
        response = await async_client.get(f"/api/sharing/{generate_link_id()}")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Link expired or not found"}

    async def test_expired_link(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user, now=utcnow() - timedelta(hours=2), hours=1)

        response = await async_client.get(f"/api/sharing/{link.id}")

        assert response.status_code == 410
        assert response.json()["success"] is False

    async def test_access_limit(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user, max_access=2)

        assert (await async_client.get(f"/api/sharing/{link.id}")).status_code == 200
        assert (await async_client.get(f"/api/sharing/{link.id}")).status_code == 200
        response = await async_client.get(f"/api/sharing/{link.id}")

        assert response.status_code == 429
        assert response.json() == {"success": False, "error": "Access limit exceeded"}

    async def test_record_access_counts(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user, max_access=1)

        response = await async_client.post(f"/api/sharing/{link.id}/access")
        assert response.status_code == 200

        response = await async_client.get(f"/api/sharing/{link.id}")
        assert response.status_code == 429

    async def test_access_is_audited(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user)

        await async_client.get(f"/api/sharing/{link.id}")

        result = await db_session.execute(
            select(AuditLog).where(AuditLog.action_type == ActionType.SHARE_LINK_ACCESSED)
        )
        entry = result.scalar_one()
        assert entry.user_type == UserType.PUBLIC
        assert entry.resource_id == link.id
        assert entry.request_id


class TestDeactivateShareLink:
    """Tests for POST /api/sharing/{link_id}/deactivate."""

    async def test_deactivated_link_is_gone(self, async_client, auth_headers, db_session, customer, user):
        link = await make_link(db_session, customer, user)

        response = await async_client.post(f"/api/sharing/{link.id}/deactivate", headers=auth_headers)
        assert response.status_code == 200

        response = await async_client.get(f"/api/sharing/{link.id}")
        assert response.status_code == 410

    async def test_deactivate_twice(self, async_client, auth_headers, db_session, customer, user):
        link = await make_link(db_session, customer, user)

        first = await async_client.post(f"/api/sharing/{link.id}/deactivate", headers=auth_headers)
        second = await async_client.post(f"/api/sharing/{link.id}/deactivate", headers=auth_headers)

        assert first.status_code == second.status_code == 200

    async def test_non_owner_forbidden(self, async_client, other_auth_headers, db_session, customer, user):
        link = await make_link(db_session, customer, user)

        response = await async_client.post(f"/api/sharing/{link.id}/deactivate", headers=other_auth_headers)

        assert response.status_code == 403
        assert (await async_client.get(f"/api/sharing/{link.id}")).status_code == 200


class TestShareLinkDocuments:
    """Tests for signed URLs served through shareable links."""

    async def test_download_all(self, async_client, document_link, db_session, storage):
        response = await async_client.get(f"/api/sharing/{document_link.id}/download-all")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["customerName"] == "Maria Oliveira"
        assert data["totalDocuments"] == 2
        assert [doc["fileName"] for doc in data["documents"]] == ["cnh.png", "rg.pdf"]
        assert all(doc["expiresIn"] >= 300 for doc in data["documents"])
        assert all(doc["signedUrl"].startswith("https://storage.test/sign/") for doc in data["documents"])

        stored = await LinkLifecycleService.get_link(db_session, ShareableLink, document_link.id)
        assert stored.access_count == 0

    async def test_download_all_without_document_permission(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user, permissions={"viewPersonalData": True})

        response = await async_client.get(f"/api/sharing/{link.id}/download-all")

        assert response.status_code == 403

    async def test_download_all_expired(self, async_client, db_session, customer, user):
        link = await make_link(
            db_session, customer, user,
            permissions={"viewDocuments": True},
            now=utcnow() - timedelta(hours=2),
            hours=1
        )

        response = await async_client.get(f"/api/sharing/{link.id}/download-all")

        assert response.status_code == 410

    async def test_download_all_without_documents(self, async_client, db_session, customer, user):
        link = await make_link(db_session, customer, user, permissions={"viewDocuments": True})

        response = await async_client.get(f"/api/sharing/{link.id}/download-all")

        assert response.status_code == 404

    async def test_signed_urls_only_for_shared_documents(self, async_client, document_link, customer):
        shared_id = customer.uploaded_documents[0]["id"]
        unshared_id = customer.uploaded_documents[2]["id"]

        response = await async_client.post(
            f"/api/sharing/{document_link.id}/signed-urls",
            json={"documentIds": [shared_id, unshared_id]}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert list(data["urls"]) == [shared_id]
        assert data["errors"] == {}
        assert data["expiresInSeconds"] >= 300

    async def test_signed_urls_fall_back_to_relay(self, async_client, document_link, customer, storage):
        storage.fail_signing = True
        shared_id = customer.uploaded_documents[0]["id"]

        response = await async_client.post(
            f"/api/sharing/{document_link.id}/signed-urls",
            json={"documentIds": [shared_id]}
        )

        assert response.status_code == 200
        assert "/api/storage/object?token=" in response.json()["data"]["urls"][shared_id]


class TestShareLinkDocumentsAfterLimits:
    """Document URLs follow the same usability rules as the link itself."""

    @pytest.fixture
    async def spent_link_id(self, async_client, db_session, customer, user):
        documents = customer.uploaded_documents
        link = await make_link(
            db_session,
            customer,
            user,
            permissions={"viewDocuments": True},
            document_ids=[documents[0]["id"]],
            max_access=1
        )
        link_id = link.id
        assert (await async_client.get(f"/api/sharing/{link_id}")).status_code == 200
        assert (await async_client.get(f"/api/sharing/{link_id}")).status_code == 429
        return link_id

    async def test_download_all_refused_once_quota_spent(self, async_client, spent_link_id, storage):
        statuses = [
            (await async_client.get(f"/api/sharing/{spent_link_id}/download-all")).status_code
            for _ in range(3)
        ]

        assert statuses == [429, 429, 429]
        assert [call for call in storage.calls if call[0] == "sign"] == []

    async def test_signed_urls_refused_once_quota_spent(self, async_client, spent_link_id, customer, storage):
        response = await async_client.post(
            f"/api/sharing/{spent_link_id}/signed-urls",
            json={"documentIds": [customer.uploaded_documents[0]["id"]]}
        )

        assert response.status_code == 429
        assert response.json() == {"success": False, "error": "Access limit exceeded"}
        assert [call for call in storage.calls if call[0] == "sign"] == []

    async def test_download_all_deactivated(self, async_client, document_link, db_session, user, storage):
        link_id = document_link.id
        await LinkLifecycleService.deactivate(db_session, ShareableLink, link_id, user.id)

        response = await async_client.get(f"/api/sharing/{link_id}/download-all")

        assert response.status_code == 410
        assert [call for call in storage.calls if call[0] == "sign"] == []

    async def test_signed_urls_deactivated(self, async_client, document_link, db_session, customer, user):
        link_id = document_link.id
        await LinkLifecycleService.deactivate(db_session, ShareableLink, link_id, user.id)

        response = await async_client.post(
            f"/api/sharing/{link_id}/signed-urls",
            json={"documentIds": [customer.uploaded_documents[0]["id"]]}
        )

        assert response.status_code == 410


class TestMyLinks:
    """Tests for GET /api/sharing/my-links."""

    async def test_lists_only_own_links(self, async_client, auth_headers, db_session, customer, user, other_user):
        own = await make_link(db_session, customer, user)
        await make_link(db_session, customer, other_user)

        response = await async_client.get("/api/sharing/my-links", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["links"][0]["id"] == own.id
        assert data["links"][0]["customerCpf"] == customer.cpf
