import base64
from io import BytesIO

import pytest

import api_server
from modelcut.exceptions import GenerationError
from modelcut.services.generation_service import GenerationService
from modelcut.services.green_screen_compositor import GreenScreenCompositor


def data_uri(payload: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode()}"


def image_from(body, decode_png):
    return decode_png(base64.b64decode(body["image"].split(",", 1)[1]))


@pytest.fixture
def client(monkeypatch, project_service):
    monkeypatch.setattr(api_server, "project_service", project_service)
    api_server.app.config["TESTING"] = True
    return api_server.app.test_client()


@pytest.fixture
def use_generation(monkeypatch, fake_generation_repository):
    """Route generation calls to a fake repository built with the given kwargs."""
    def _use(**kwargs):
        repo = fake_generation_repository(**kwargs)
        service = GenerationService(repository=repo)
        monkeypatch.setattr(api_server, "generation_service", service)
        monkeypatch.setattr(api_server, "compositor", GreenScreenCompositor(service))
        return repo
    return _use


# ─── chroma key ──────────────────────────────────────────────────────
def test_chroma_key_upload(client, ring_image, encode, decode_png):
    resp = client.post("/api/chroma-key",
                       data={"image": (BytesIO(encode(ring_image.pixels)), "render.png"), "tolerance": "40"},
                       content_type="multipart/form-data")

    assert resp.status_code == 200
    body = resp.get_json()
    assert (body["width"], body["height"]) == (4, 4)
    out = image_from(body, decode_png)
    assert out[0, 0, 3] == 0
    assert tuple(out[2, 2]) == (150, 115, 80, 195)


def test_chroma_key_from_data_uri_and_save(client, ring_image, encode, project_service):
    resp = client.post("/api/chroma-key", json={"image_url": data_uri(encode(ring_image.pixels)), "save": True})

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["reference"].startswith("asset://results/")
    assert project_service.asset_path(body["reference"]).is_file()


@pytest.mark.parametrize("kwargs", [
    {"json": {}},
    {"json": {"image_url": "data:image/png;base64,AAAA"}},
    {"data": {"image": (BytesIO(b"junk"), "x.png")}, "content_type": "multipart/form-data"},
    {"data": {"image": (BytesIO(b"GIF89a"), "x.gif")}, "content_type": "multipart/form-data"},
])
def test_chroma_key_bad_input(client, kwargs):
    resp = client.post("/api/chroma-key", **kwargs)
    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


@pytest.mark.parametrize("tolerance", ["0", "-3", "abc", "nan", "inf", "-inf"])
def test_chroma_key_bad_tolerance(client, ring_image, encode, tolerance):
    resp = client.post("/api/chroma-key",
                       json={"image_url": data_uri(encode(ring_image.pixels)), "tolerance": tolerance})
    assert resp.status_code == 400


# ─── remove background ───────────────────────────────────────────────
def test_remove_background(client, use_generation, ring_image, encode, decode_png):
    repo = use_generation(response=encode(ring_image.pixels))

    resp = client.post("/api/remove-background", json={"image_url": data_uri(encode(ring_image.pixels))})

    assert resp.status_code == 200
    assert image_from(resp.get_json(), decode_png)[0, 0, 3] == 0
    assert len(repo.calls) == 1


def test_remove_background_upstream_failure(client, use_generation, ring_image, encode):
    use_generation(error=GenerationError("quota exceeded"))

    resp = client.post("/api/remove-background", json={"image_url": data_uri(encode(ring_image.pixels))})

    assert resp.status_code == 502
    assert "quota exceeded" in resp.get_json()["message"]


def test_remove_background_bad_color(client, use_generation, ring_image, encode):
    repo = use_generation(response=b"")
    resp = client.post("/api/remove-background",
                       json={"image_url": data_uri(encode(ring_image.pixels)), "color": "lime"})
    assert resp.status_code == 400
    assert repo.calls == []


# ─── projects ────────────────────────────────────────────────────────
def test_project_crud(client):
    doc = {"name": "Autumn", "productImages": [{"url": data_uri(b"p"), "mimeType": "image/png"}]}

    created = client.post("/api/projects", json=doc)
    assert created.status_code == 201
    project_id = created.get_json()["project_id"]

    listed = client.get("/api/projects").get_json()["projects"]
    assert [p["id"] for p in listed] == [project_id]

    project = client.get(f"/api/projects/{project_id}").get_json()["project"]
    assert project["productImages"][0]["url"].startswith("asset://products/")

    project["name"] = "Autumn v2"
    updated = client.put(f"/api/projects/{project_id}", json=project)
    assert updated.get_json()["project"]["name"] == "Autumn v2"

    assert client.delete(f"/api/projects/{project_id}").status_code == 200
    assert client.get(f"/api/projects/{project_id}").status_code == 404


def test_unknown_project(client):
    assert client.get("/api/projects/does-not-exist").status_code == 404
    assert client.delete("/api/projects/does-not-exist").status_code == 404


def test_serve_asset(client, project_service):
    ref = project_service.repository.save_asset(b"bytes", "results", ".png")

    resp = client.get("/api/assets/" + ref[len("asset://"):])

    assert resp.status_code == 200
    assert resp.data == b"bytes"
    assert client.get("/api/assets/results/missing.png").status_code == 404


# ─── generate ────────────────────────────────────────────────────────
def test_generate_without_project(client, use_generation):
    repo = use_generation(response=b"shot", summary="Model with bag")

    resp = client.post("/api/generate", json={
        "product_images": [{"url": data_uri(b"bag")}],
        "config": {"aspectRatio": "PORTRAIT_4_5", "prompt": "street"},
    })

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["result"]["imageUrl"] == data_uri(b"shot")
    assert body["result"]["aspectRatio"] == "PORTRAIT_4_5"
    assert repo.calls[0]["aspect_ratio"] == "3:4"


def test_generate_records_on_project(client, use_generation, project_service):
    use_generation(response=b"shot")
    created = client.post("/api/projects", json={"name": "p", "baseImage": {"url": data_uri(b"base")}})
    project_id = created.get_json()["project_id"]

    resp = client.post("/api/generate", json={"project_id": project_id, "config": {}})

    result = resp.get_json()["result"]
    assert result["imageUrl"].startswith("asset://results/")
    stored = project_service.get_project(project_id)
    assert stored.active_version_index == 0
    assert stored.history[0].image_url == result["imageUrl"]


def test_generate_needs_input(client, use_generation):
    use_generation(response=b"shot")
    assert client.post("/api/generate", json={"config": {}}).status_code == 400


def test_stored_reference_feeds_the_filter_again(client, ring_image, encode):
    saved = client.post("/api/chroma-key",
                        json={"image_url": data_uri(encode(ring_image.pixels)), "save": "true"}).get_json()

    again = client.post("/api/chroma-key", json={"image_url": saved["reference"]})

    assert again.status_code == 200
    assert (again.get_json()["width"], again.get_json()["height"]) == (4, 4)


@pytest.mark.parametrize("flag, expected", [
    (None, "Preserve natural shadows"),
    (False, "Remove all shadows"),
    ("false", "Remove all shadows"),
])
def test_remove_background_shadow_option(client, use_generation, ring_image, encode, flag, expected):
    repo = use_generation(response=encode(ring_image.pixels))
    body = {"image_url": data_uri(encode(ring_image.pixels))}
    if flag is not None:
        body["preserve_shadows"] = flag

    assert client.post("/api/remove-background", json=body).status_code == 200
    assert expected in repo.calls[0]["parts"][0].text
