from fastapi.testclient import TestClient

from dashboard_app.models import GalleryItem, Story, StoryGroup
from dashboard_app.utils import normalize_media_path


class TestMediaPaths:
    def test_absolute_urls_become_object_keys(self):
        assert normalize_media_path("https://cdn.example.com/models/luna/1.jpg") == "models/luna/1.jpg"
        assert normalize_media_path("http://cdn.example.com/a.mp4") == "a.mp4"

    def test_relative_keys_pass_through(self):
        assert normalize_media_path("models/luna/1.jpg") == "models/luna/1.jpg"


class TestGallery:
    """Gallery items and their ordering"""

    def _add(self, client, headers, model_id, media_url="https://cdn.example.com/g/1.jpg"):
        return client.post(
            "/api/admin/gallery",
            json={"model_id": model_id, "media_url": media_url, "media_type": "image"},
            headers=headers,
        )

    def test_add_gallery_item(self, client: TestClient, admin_headers, make_model):
        model = make_model("Luna")

        first = self._add(client, admin_headers, model.id)
        second = self._add(client, admin_headers, model.id, "g/2.jpg")

        assert first.status_code == 201
        assert first.json()["data"]["media_url"] == "g/1.jpg"
        assert first.json()["data"]["sort_order"] == 0
        assert second.json()["data"]["sort_order"] == 1

    def test_add_validation(self, client: TestClient, admin_headers, make_model):
        model = make_model("Luna")

        response = client.post(
            "/api/admin/gallery", json={"model_id": model.id}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: model_id, media_url, media_type"

        response = client.post(
            "/api/admin/gallery",
            json={"model_id": model.id, "media_url": "a.gif", "media_type": "gif"},
            headers=admin_headers,
        )
        assert response.status_code == 400

        assert self._add(client, admin_headers, "missing").status_code == 404

    def test_reorder_persists_submitted_order(
        self, client: TestClient, admin_headers, make_model, db_session
    ):
        model = make_model("Luna")
        ids = [
            self._add(client, admin_headers, model.id, f"g/{n}.jpg").json()["data"]["id"]
            for n in range(3)
        ]

        new_order = list(reversed(ids))
        response = client.post(
            "/api/admin/gallery/reorder",
            json={"items": [{"id": item_id, "sort_order": i} for i, item_id in enumerate(new_order)]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["updated"] == 3

        listed = client.get(
            "/api/admin/gallery", params={"model_id": model.id}, headers=admin_headers
        ).json()["data"]
        assert [item["id"] for item in listed] == new_order

    def test_reorder_errors(self, client: TestClient, admin_headers, make_model):
        model = make_model("Luna")
        item_id = self._add(client, admin_headers, model.id).json()["data"]["id"]

        assert client.post(
            "/api/admin/gallery/reorder", json={"items": []}, headers=admin_headers
        ).status_code == 400
        assert client.post(
            "/api/admin/gallery/reorder",
            json={"items": [{"id": item_id, "sort_order": 0}, {"id": item_id, "sort_order": 1}]},
            headers=admin_headers,
        ).status_code == 400
        assert client.post(
            "/api/admin/gallery/reorder",
            json={"items": [{"id": "missing", "sort_order": 0}]},
            headers=admin_headers,
        ).status_code == 404

    def test_delete_gallery_item(self, client: TestClient, admin_headers, make_model, db_session):
        model = make_model("Luna")
        item_id = self._add(client, admin_headers, model.id).json()["data"]["id"]

        assert client.delete(f"/api/admin/gallery/{item_id}", headers=admin_headers).status_code == 200
        assert db_session.query(GalleryItem).count() == 0
        assert client.delete(f"/api/admin/gallery/{item_id}", headers=admin_headers).status_code == 404


class TestStories:
    """Stories and story groups"""

    def _add_story(self, client, headers, **body):
        return client.post("/api/admin/stories", json=body, headers=headers)

    def test_add_story_creates_group(self, client: TestClient, admin_headers, make_model, db_session):
        model = make_model("Luna")

        response = self._add_story(
            client, admin_headers, model_id=model.id, media_url="https://cdn.example.com/s/1.jpg"
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["story"]["media_url"] == "s/1.jpg"
        assert data["story"]["duration"] == 5

        group = db_session.get(StoryGroup, data["group_id"])
        assert group.cover_url == "s/1.jpg"
        assert group.is_pinned is False

        db_session.refresh(model)
        assert model.last_story_added_at is not None

    def test_stories_reuse_group_by_pinned_flag(self, client: TestClient, admin_headers, make_model):
        model = make_model("Luna")

        first = self._add_story(client, admin_headers, model_id=model.id, media_url="a.jpg")
        second = self._add_story(client, admin_headers, model_id=model.id, media_url="b.jpg")
        pinned = self._add_story(
            client, admin_headers, model_id=model.id, media_url="c.jpg", is_pinned=True
        )

        assert first.json()["data"]["group_id"] == second.json()["data"]["group_id"]
        assert pinned.json()["data"]["group_id"] != first.json()["data"]["group_id"]
        assert second.json()["data"]["story"]["sort_order"] == 1

        groups = client.get(
            "/api/admin/story-groups", params={"model_id": model.id}, headers=admin_headers
        ).json()["data"]
        titles = {group["id"]: group["title"] for group in groups}
        assert titles[pinned.json()["data"]["group_id"]] == "Pinned"

    def test_group_must_belong_to_model(self, client: TestClient, admin_headers, make_model):
        luna = make_model("Luna")
        mia = make_model("Mia")
        group_id = self._add_story(
            client, admin_headers, model_id=luna.id, media_url="a.jpg"
        ).json()["data"]["group_id"]

        response = self._add_story(
            client, admin_headers, model_id=mia.id, media_url="b.jpg", group_id=group_id
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid group_id or group does not belong to this model"

    def test_missing_fields(self, client: TestClient, admin_headers):
        response = self._add_story(client, admin_headers, media_url="a.jpg")
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: model_id and media_url"

    def test_update_and_delete_group_cascades(
        self, client: TestClient, admin_headers, make_model, db_session
    ):
        model = make_model("Luna")
        group_id = self._add_story(
            client, admin_headers, model_id=model.id, media_url="a.jpg"
        ).json()["data"]["group_id"]

        response = client.put(
            f"/api/admin/story-groups/{group_id}",
            json={"title": "Beach", "cover_url": "https://cdn.example.com/c.jpg"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Beach"
        assert response.json()["data"]["cover_url"] == "c.jpg"

        assert client.delete(
            f"/api/admin/story-groups/{group_id}", headers=admin_headers
        ).status_code == 200
        assert db_session.query(Story).count() == 0

    def test_reorder_stories_and_groups(self, client: TestClient, admin_headers, make_model):
        model = make_model("Luna")
        first = self._add_story(client, admin_headers, model_id=model.id, media_url="a.jpg").json()
        second = self._add_story(client, admin_headers, model_id=model.id, media_url="b.jpg").json()
        pinned = self._add_story(
            client, admin_headers, model_id=model.id, media_url="c.jpg", is_pinned=True
        ).json()

        response = client.post(
            "/api/admin/stories/reorder",
            json={"items": [
                {"id": second["data"]["story_id"], "sort_order": 0},
                {"id": first["data"]["story_id"], "sort_order": 1},
            ]},
            headers=admin_headers,
        )
        assert response.json()["data"]["updated"] == 2

        response = client.post(
            "/api/admin/story-groups/reorder",
            json={"items": [
                {"id": pinned["data"]["group_id"], "sort_order": 0},
                {"id": first["data"]["group_id"], "sort_order": 1},
            ]},
            headers=admin_headers,
        )
        assert response.status_code == 200

        groups = client.get(
            "/api/admin/story-groups", params={"model_id": model.id}, headers=admin_headers
        ).json()["data"]
        assert [group["id"] for group in groups] == [
            pinned["data"]["group_id"], first["data"]["group_id"]
        ]
        assert [story["media_url"] for story in groups[1]["stories"]] == ["b.jpg", "a.jpg"]
