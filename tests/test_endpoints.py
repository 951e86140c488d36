"""
Tests for API endpoints including health checks, error envelopes, auth, customers and leads.
"""
import pytest


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert "version" in data
        assert data["docs"] == "/api/docs"


class TestSecurityHeaders:
    """Tests for security headers in responses."""

    def test_csp_header(self, client):
        response = client.get("/health")

        assert "default-src 'none'" in response.headers["Content-Security-Policy"]

    def test_content_type_options_header(self, client):
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_frame_options_header(self, client):
        response = client.get("/health")

        assert response.headers["X-Frame-Options"] == "DENY"

    def test_no_referrer(self, client):
        """Share URLs must not leak to third parties through Referer."""
        response = client.get("/health")

        assert response.headers["Referrer-Policy"] == "no-referrer"

    def test_not_cached(self, client):
        response = client.get("/health")

        assert response.headers["Cache-Control"] == "no-store"


class TestRequestId:
    """Tests for request ID propagation."""

    def test_generated_request_id(self, client):
        response = client.get("/health")

        assert response.headers["X-Request-ID"]

    def test_incoming_request_id_kept(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestErrorEnvelope:
    """Errors always use the {success: false, error} envelope."""

    def test_unknown_route(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not Found"}

    def test_missing_token(self, client):
        response = client.get("/api/customers")

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Access token required"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get("/api/customers", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired token"


class TestAuthEndpoints:
    """Tests for /api/auth."""

    async def test_login(self, async_client, user):
        response = await async_client.post(
            "/api/auth/login",
            json={"email": "ANA@tellus.com.br", "password": "secret123"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["token"]
        assert data["user"]["email"] == "ana@tellus.com.br"

    async def test_login_wrong_password(self, async_client, user):
        response = await async_client.post(
            "/api/auth/login",
            json={"email": "ana@tellus.com.br", "password": "wrong-password"}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid email or password"}

    async def test_login_unknown_email(self, async_client, db_session):
        response = await async_client.post(
            "/api/auth/login",
            json={"email": "nobody@tellus.com.br", "password": "secret123"}
        )

        assert response.status_code == 401

    async def test_me(self, async_client, auth_headers, user):
        response = await async_client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == user.id


CUSTOMER_PAYLOAD = {
    "name": "João Pereira",
    "email": "joao@example.com",
    "phone": "11912345678",
    "cpf": "987.654.321-00",
    "birthDate": "1990-02-20",
    "address": {
        "street": "Av. Brasil",
        "number": "500",
        "neighborhood": "Jardim",
        "city": "Ribeirão Preto",
        "state": "SP",
        "zipCode": "14020-000",
    },
    "monthlyIncome": 8000,
}


class TestCustomerEndpoints:
    """Tests for /api/customers."""

    async def test_create_customer(self, async_client, auth_headers):
        response = await async_client.post("/api/customers", headers=auth_headers, json=CUSTOMER_PAYLOAD)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["cpf"] == "98765432100"
        assert data["address"]["zipCode"] == "14020000"
        assert data["uploadedDocuments"] == []

    async def test_duplicate_cpf(self, async_client, auth_headers):
        await async_client.post("/api/customers", headers=auth_headers, json=CUSTOMER_PAYLOAD)
        response = await async_client.post("/api/customers", headers=auth_headers, json=CUSTOMER_PAYLOAD)

        assert response.status_code == 400

    async def test_invalid_cpf(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/customers", headers=auth_headers, json={**CUSTOMER_PAYLOAD, "cpf": "123"}
        )

        assert response.status_code == 400
        assert "cpf" in response.json()["error"]

    async def test_list_and_search(self, async_client, auth_headers, customer):
        await async_client.post("/api/customers", headers=auth_headers, json=CUSTOMER_PAYLOAD)

        response = await async_client.get("/api/customers", headers=auth_headers)
        assert response.json()["data"]["total"] == 2

        response = await async_client.get("/api/customers", headers=auth_headers, params={"search": "maria"})
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["customers"][0]["id"] == customer.id

        response = await async_client.get("/api/customers", headers=auth_headers, params={"city": "ribeirão preto"})
        assert response.json()["data"]["customers"][0]["cpf"] == "98765432100"

    async def test_get_unknown_customer(self, async_client, auth_headers, db_session):
        response = await async_client.get("/api/customers/999", headers=auth_headers)

        assert response.status_code == 404

    async def test_attach_and_delete_document(self, async_client, auth_headers, customer, storage):
        storage.objects["12345678909/new.pdf"] = b"%PDF"
        response = await async_client.post(
            f"/api/customers/{customer.id}/documents",
            headers=auth_headers,
            json={
                "id": "12345678909/new.pdf",
                "fileName": "new.pdf",
                "fileType": "application/pdf",
                "documentType": "contrato",
            }
        )
        assert response.status_code == 200
        assert len(response.json()["data"]["uploadedDocuments"]) == 4

        response = await async_client.delete(
            f"/api/customers/{customer.id}/documents/12345678909/new.pdf",
            headers=auth_headers
        )
        assert response.status_code == 200
        assert len(response.json()["data"]["uploadedDocuments"]) == 3
        assert "12345678909/new.pdf" not in storage.objects

    async def test_delete_unknown_document(self, async_client, auth_headers, customer):
        response = await async_client.delete(
            f"/api/customers/{customer.id}/documents/12345678909/nope.pdf",
            headers=auth_headers
        )

        assert response.status_code == 404


class TestLeadEndpoints:
    """Tests for /api/leads."""

    async def test_create_credito_lead(self, async_client, db_session):
        response = await async_client.post(
            "/api/leads",
            json={
                "source": "credito",
                "name": "Carla Dias",
                "email": "carla@example.com",
                "phone": "11955554444",
                "monthlyIncome": 9000,
                "propertyValue": 450000,
                "propertyCity": "Santos",
            }
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["source"] == "credito"
        assert data["status"] == "novo"
        assert data["details"] == {"monthlyIncome": 9000.0, "propertyValue": 450000.0, "propertyCity": "Santos"}

    async def test_create_agro_lead(self, async_client, db_session):
        response = await async_client.post(
            "/api/leads",
            json={
                "source": "agro",
                "name": "Pedro Campos",
                "email": "pedro@example.com",
                "phone": "34999998888",
                "farmName": "Fazenda Boa Vista",
                "propertyArea": 120.5,
            }
        )

        assert response.status_code == 201
        assert response.json()["data"]["details"]["farmName"] == "Fazenda Boa Vista"

    async def test_unknown_source(self, async_client, db_session):
        response = await async_client.post(
            "/api/leads",
            json={"source": "outro", "name": "X Y", "email": "x@example.com", "phone": "11955554444"}
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_missing_contact_fields(self, async_client, db_session):
        response = await async_client.post("/api/leads", json={"source": "geral", "name": "X Y"})

        assert response.status_code == 400

    async def test_list_requires_auth(self, async_client, db_session):
        response = await async_client.get("/api/leads")

        assert response.status_code == 401

    async def test_status_flow(self, async_client, auth_headers):
        created = await async_client.post(
            "/api/leads",
            json={"source": "geral", "name": "Lia Rocha", "email": "lia@example.com", "phone": "11944443333"}
        )
        lead_id = created.json()["data"]["id"]

        response = await async_client.patch(
            f"/api/leads/{lead_id}/status", headers=auth_headers, json={"status": "rejeitado"}
        )
        assert response.status_code == 400

        response = await async_client.patch(
            f"/api/leads/{lead_id}/status",
            headers=auth_headers,
            json={"status": "rejeitado", "rejectionReason": "Renda insuficiente"}
        )
        data = response.json()["data"]
        assert data["status"] == "rejeitado"
        assert data["rejectionReason"] == "Renda insuficiente"
        assert data["rejectedAt"] is not None

        response = await async_client.patch(
            f"/api/leads/{lead_id}/status", headers=auth_headers, json={"status": "em_analise"}
        )
        data = response.json()["data"]
        assert data["rejectionReason"] is None
        assert data["rejectedAt"] is None

    async def test_filter_by_source(self, async_client, auth_headers):
        for source in ("geral", "consultoria"):
            await async_client.post(
                "/api/leads",
                json={"source": source, "name": "Lia Rocha", "email": "lia@example.com", "phone": "11944443333"}
            )

        response = await async_client.get("/api/leads", headers=auth_headers, params={"source": "consultoria"})

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["leads"][0]["source"] == "consultoria"
