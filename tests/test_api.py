import pytest
from fastapi.testclient import TestClient

from medialib.main import create_app

EDITOR = {"X-Media-Editor": "true"}


@pytest.fixture
def client(settings):
    app = create_app(settings.model_copy(update={"SEED_DEFAULT_SIZES": True}))
    with TestClient(app) as c:
        yield c


def _upload(client, data, name="photo.png", headers=EDITOR, **form):
    return client.post("/api/v1/media/upload", files={"file": (name, data, "image/png")}, data=form, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "db": True}


def test_upload_requires_editor(client, make_image):
    response = _upload(client, make_image(), headers={})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "media.not_permitted"


def test_upload_rejects_non_image_even_with_image_content_type(client):
    response = _upload(client, b"definitely not a png")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "media.invalid_image"
    assert error["http_status"] == 400
    assert "try again" in error["message"]


def test_media_lifecycle(client, make_image):
    response = _upload(client, make_image(640, 480, fmt="JPEG"), name="river.jpg", category="blog", tags="nature,water")
    assert response.status_code == 201
    asset = response.json()
    asset_id = asset["id"]
    assert asset["category"] == "blog"
    assert asset["url"] == f"/content/{asset['file_path']}"
    assert "blog-featured" in asset["variants"]

    assert client.get(asset["url"]).status_code == 200
    assert client.get(f"/api/v1/media/{asset_id}").json()["file_name"] == "river.jpg"
    listing = client.get("/api/v1/media", params={"search": "river", "tags": "water"}).json()
    assert [a["id"] for a in listing["items"]] == [asset_id]

    patched = client.patch(f"/api/v1/media/{asset_id}", json={"title": "River bend"}, headers=EDITOR)
    assert patched.json()["title"] == "River bend"

    variant = client.get(f"/api/v1/media/{asset_id}/variants/blog-mini").json()
    assert variant["url"].endswith("blog-mini_100x84.webp")

    attach = client.post(f"/api/v1/media/{asset_id}/usages", json={"consumer_type": "blog", "consumer_id": "5",
                                                                   "usage_type": "featured"}, headers=EDITOR)
    assert attach.status_code == 200
    assert len(client.get(f"/api/v1/media/{asset_id}/usages").json()) == 1

    blocked = client.delete(f"/api/v1/media/{asset_id}", headers=EDITOR)
    assert blocked.status_code == 409
    error = blocked.json()["error"]
    assert error["code"] == "media.in_use"
    assert [(u["consumer_type"], u["consumer_id"]) for u in error["details"]["usages"]] == [("blog", "5")]

    released = client.delete("/api/v1/usages/blog/5", headers=EDITOR)
    assert released.json() == {"released": 1}
    assert client.delete(f"/api/v1/media/{asset_id}", headers=EDITOR).status_code == 204

    missing = client.get(f"/api/v1/media/{asset_id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "media.not_found"
    assert client.get(asset["url"]).status_code == 404


def test_stats(client, make_image):
    _upload(client, make_image(), category="team")
    stats = client.get("/api/v1/media/stats").json()
    assert stats["total_count"] == 1
    assert stats["by_category"] == {"team": 1}


def test_sizes(client):
    sizes = client.get("/api/v1/sizes").json()
    assert len(sizes) == 14
    social = next(s for s in sizes if s["label"] == "social-share")
    assert (social["width"], social["height"], social["mode"]) == (1200, 630, "crop")

    duplicate = client.post("/api/v1/sizes", json={"label": "Social Share", "width": 10, "height": 10}, headers=EDITOR)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "media.size_exists"

    created = client.post("/api/v1/sizes", json={"label": "Newsletter", "width": 600, "height": 300, "mode": "fit"},
                          headers=EDITOR)
    assert created.status_code == 201
    assert created.json()["label"] == "newsletter"

    retired = client.delete("/api/v1/sizes/newsletter", headers=EDITOR)
    assert retired.json()["is_active"] is False
    assert client.delete("/api/v1/sizes/nope", headers=EDITOR).status_code == 404


def test_external_source_unavailable(client):
    response = client.get("/api/v1/external/search", params={"q": "trees"})
    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "media.source_unavailable"
    assert error["message"] == "The photo service is unavailable right now. Please try again later."


def test_duplicates_lookup(client, make_image):
    data = make_image(30, 30)
    asset_id = _upload(client, data).json()["id"]
    found = client.post("/api/v1/media/duplicates", files={"file": ("again.png", data, "image/png")})
    assert [a["id"] for a in found.json()] == [asset_id]
    assert found.json()[0]["file_hash"]


def test_oversize_upload_is_rejected_while_reading(settings, make_image):
    app = create_app(settings.model_copy(update={"MAX_UPLOAD_BYTES": 100}))
    with TestClient(app) as client:
        response = _upload(client, make_image(300, 300, fmt="BMP"))
        listing = client.get("/api/v1/media").json()
    assert response.status_code == 413
    assert response.json()["error"]["code"] == "media.too_large"
    assert listing["total"] == 0
