import asyncio

import pytest
from fastapi.testclient import TestClient

from dashboard_app.errors import ForbiddenError
from dashboard_app.models import GalleryItem, Model, Story, StoryGroup
from dashboard_app.schemas.model import ModelCreate, ModelUpdate
from dashboard_app.services.model_service import ModelService
from dashboard_app.services.permissions import organization_context
from dashboard_app.utils import slugify_model_name, utcnow


class TestModelSlug:
    """Slugs derived from model names"""

    def test_slugify_model_name(self):
        assert slugify_model_name("Luna Star") == "luna-star"
        assert slugify_model_name("  Mia  Rose! ") == "mia-rose"
        assert slugify_model_name("Ana-Maria 2") == "ana-maria-2"
        assert slugify_model_name("Zoë") == "zo"


class TestAdminModels:
    """Model CRUD through the admin API"""

    def test_create_model(self, client: TestClient, admin_headers):
        response = client.post(
            "/api/admin/models",
            json={"name": "Luna Star", "bio": "Hi", "tags": ["new"]},
            headers=admin_headers,
        )
        assert response.status_code == 201

        data = response.json()["data"]
        assert data["slug"] == "luna-star"
        assert data["is_new"] is True
        assert data["tags"] == ["new"]

    def test_create_requires_name(self, client: TestClient, admin_headers):
        response = client.post("/api/admin/models", json={}, headers=admin_headers)
        assert response.status_code == 400

    def test_duplicate_slug_is_409(self, client: TestClient, admin_headers, make_model):
        make_model("Luna Star", slug="luna-star")
        response = client.post(
            "/api/admin/models", json={"name": "Luna Star"}, headers=admin_headers
        )
        assert response.status_code == 409

    def test_list_with_search_and_counts(
        self, client: TestClient, admin_headers, make_model, db_session
    ):
        luna = make_model("Luna Star")
        make_model("Mia Rose")
        db_session.add(GalleryItem(model_id=luna.id, media_url="a.jpg", media_type="image"))
        group = StoryGroup(model_id=luna.id)
        db_session.add(group)
        db_session.flush()
        db_session.add_all([
            Story(group_id=group.id, media_url="s1.jpg"),
            Story(group_id=group.id, media_url="s2.jpg"),
        ])
        db_session.commit()

        response = client.get(
            "/api/admin/models", params={"search": "LUNA"}, headers=admin_headers
        )
        data = response.json()["data"]
        assert [row["slug"] for row in data] == ["luna-star"]
        assert data[0]["gallery_count"] == 1
        assert data[0]["story_count"] == 2

    def test_organization_key_only_lists_own_models(
        self, client: TestClient, make_organization, make_model
    ):
        organization = make_organization(api_key="org-key")
        make_model("Luna", organization=organization)
        make_model("Mia")

        data = client.get("/api/admin/models", params={"key": "org-key"}).json()["data"]
        assert [row["slug"] for row in data] == ["luna"]

    def test_organization_cannot_read_foreign_model(
        self, client: TestClient, make_organization, make_model
    ):
        make_organization(api_key="org-key")
        other = make_model("Mia")
        response = client.get(f"/api/admin/models/{other.id}", params={"key": "org-key"})
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden: Model does not belong to your organization"

    def test_update_and_delete(self, client: TestClient, admin_headers, make_model, db_session):
        model = make_model("Luna")

        response = client.put(
            f"/api/admin/models/{model.id}",
            json={"is_verified": True, "bio": "Updated"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["is_verified"] is True

        assert client.put(
            f"/api/admin/models/{model.id}", json={}, headers=admin_headers
        ).status_code == 400

        assert client.delete(f"/api/admin/models/{model.id}", headers=admin_headers).status_code == 200
        assert db_session.query(Model).count() == 0
        assert client.get(f"/api/admin/models/{model.id}", headers=admin_headers).status_code == 404

    def test_delete_cascades_media(self, client: TestClient, admin_headers, make_model, db_session):
        model = make_model("Luna")
        db_session.add(GalleryItem(model_id=model.id, media_url="a.jpg", media_type="image"))
        db_session.commit()

        client.delete(f"/api/admin/models/{model.id}", headers=admin_headers)
        assert db_session.query(GalleryItem).count() == 0


class TestModelAssignment:
    """Assigning models to organizations"""

    def test_assign_and_unassign(
        self, client: TestClient, admin_headers, make_organization, make_model
    ):
        organization = make_organization()
        model = make_model("Luna")

        response = client.post(
            "/api/admin/models/assign",
            json={"model_id": model.id, "organization_id": organization.id},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["organization_id"] == organization.id
        assert response.json()["message"] == "Model assigned to organization"

        response = client.post(
            "/api/admin/models/assign",
            json={"model_id": model.id, "organization_id": None},
            headers=admin_headers,
        )
        assert response.json()["data"]["organization_id"] is None
        assert response.json()["message"] == "Model unassigned from organization"

    def test_assign_errors(self, client: TestClient, admin_headers, make_organization, make_model):
        organization = make_organization()
        model = make_model("Luna")

        assert client.post(
            "/api/admin/models/assign", json={"organization_id": organization.id},
            headers=admin_headers,
        ).status_code == 400
        assert client.post(
            "/api/admin/models/assign",
            json={"model_id": model.id, "organization_id": "missing"},
            headers=admin_headers,
        ).status_code == 404
        assert client.post(
            "/api/admin/models/assign",
            json={"model_id": "missing", "organization_id": organization.id},
            headers=admin_headers,
        ).status_code == 404

    def test_assign_is_admin_only(self, client: TestClient, make_organization, make_model):
        organization = make_organization(api_key="org-key")
        model = make_model("Luna")
        response = client.post(
            "/api/admin/models/assign",
            params={"key": "org-key"},
            json={"model_id": model.id, "organization_id": organization.id},
        )
        assert response.status_code == 403


class TestOrganizationModels:
    """The /api/org/{org_id}/models scope"""

    def test_list_orders_verified_then_recent_stories(
        self, client: TestClient, make_organization, make_model
    ):
        organization = make_organization(api_key="org-key")
        make_model("Quiet", organization=organization)
        make_model("Active", organization=organization, last_story_added_at=utcnow())
        make_model("Verified", organization=organization, is_verified=True)

        response = client.get(f"/api/org/{organization.id}/models", params={"key": "org-key"})
        assert [row["slug"] for row in response.json()["data"]] == ["verified", "active", "quiet"]

    def test_patch_only_changes_basic_info(
        self, client: TestClient, make_organization, make_model
    ):
        organization = make_organization(api_key="org-key")
        model = make_model("Luna", organization=organization)

        response = client.patch(
            f"/api/org/{organization.id}/models/{model.id}",
            params={"key": "org-key"},
            json={"bio": "New bio", "is_verified": True},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["bio"] == "New bio"
        assert data["is_verified"] is False

    def test_organization_cannot_create_models(self, client: TestClient, make_organization):
        organization = make_organization(api_key="org-key")
        response = client.post(
            f"/api/org/{organization.id}/models", params={"key": "org-key"}, json={"name": "New"}
        )
        assert response.status_code == 403

    def test_admin_creates_model_in_organization(
        self, client: TestClient, admin_headers, make_organization
    ):
        organization = make_organization()
        response = client.post(
            f"/api/org/{organization.id}/models", json={"name": "New"}, headers=admin_headers
        )
        assert response.status_code == 201
        assert response.json()["data"]["organization_id"] == organization.id

    def test_delete_unassigns(
        self, client: TestClient, make_organization, make_model, db_session
    ):
        organization = make_organization(api_key="org-key")
        model = make_model("Luna", organization=organization)

        response = client.delete(
            f"/api/org/{organization.id}/models/{model.id}", params={"key": "org-key"}
        )
        assert response.status_code == 200
        db_session.refresh(model)
        assert model.organization_id is None


class TestModelService:
    """ModelService rules for organization callers"""

    def test_organization_update_drops_admin_fields(self, db_session, make_organization, make_model):
        organization = make_organization()
        model = make_model("Luna", organization=organization)
        ctx = organization_context(organization.id, organization.name)

        updated = asyncio.run(
            ModelService(db_session).update_model(
                ctx, model.id, ModelUpdate(name="Luna S", is_pinned=True)
            )
        )
        assert updated.name == "Luna S"
        assert updated.is_pinned is False

    def test_organization_cannot_delete(self, db_session, make_organization, make_model):
        organization = make_organization()
        model = make_model("Luna", organization=organization)
        ctx = organization_context(organization.id, organization.name)

        with pytest.raises(ForbiddenError):
            asyncio.run(ModelService(db_session).delete_model(ctx, model.id))
        with pytest.raises(ForbiddenError):
            asyncio.run(ModelService(db_session).create_model(ctx, ModelCreate(name="X")))
