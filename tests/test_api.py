"""
Tests for the HTTP compression service.

TestClient is used without its context manager so the lifespan shutdown
does not remove the artifact directory between tests; TestLifespan is the
one place that runs it.
"""
import io
import os
import base64
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from tinypix import TEMP_DIR, app
from tinypix.config import Settings, get_settings
from tinypix.utils.file_handling import artifact_path, store_artifact
from conftest import make_jpeg, make_png


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def small_limits():
    app.dependency_overrides[get_settings] = lambda: Settings(max_upload_mb=0.001, max_files_per_request=2)
    yield
    app.dependency_overrides.pop(get_settings, None)


# ============================================
# Health
# ============================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "OK"

    def test_detailed_health_reports_codecs(self, client):
        body = client.get("/api/health/detailed").json()
        assert body["codec"]["jpeg"]["status"] == "ok"
        assert body["codec"]["png"]["status"] == "ok"
        assert "system" in body and "temp_directory" in body


# ============================================
# Single file
# ============================================

class TestSingleFile:

    def test_returns_compressed_image(self, client):
        original = make_jpeg(320, 240, quality=100)
        response = client.post(
            "/api/compress",
            files={"file": ("photo.jpg", original, "image/jpeg")},
            data={"quality": "60"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert 'filename="photo.jpg"' in response.headers["content-disposition"]
        assert int(response.headers["x-original-size"]) == len(original)
        assert int(response.headers["x-compressed-size"]) == len(response.content)
        assert float(response.headers["x-compression-ratio"]) > 0
        assert Image.open(io.BytesIO(response.content)).size == (320, 240)

    def test_quality_out_of_range_is_clamped(self, client):
        original = make_jpeg(64, 64)
        high = client.post("/api/compress", files={"file": ("a.jpg", original, "image/jpeg")}, data={"quality": "150"})
        top = client.post("/api/compress", files={"file": ("a.jpg", original, "image/jpeg")}, data={"quality": "100"})
        assert high.status_code == 200
        assert high.content == top.content

    def test_unsupported_type_is_415(self, client):
        response = client.post("/api/compress", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 415

    def test_oversize_is_413(self, client, small_limits):
        response = client.post("/api/compress", files={"file": ("big.png", make_png(64, 64), "image/png")})
        assert response.status_code == 413

    def test_undecodable_is_422(self, client):
        response = client.post("/api/compress", files={"file": ("broken.jpg", b"not a jpeg", "image/jpeg")})
        assert response.status_code == 422
        assert "Compression failed" in response.json()["detail"]

    def test_directory_part_is_stripped_from_filename(self, client):
        response = client.post(
            "/api/compress",
            files={"file": ("../../evil.png", make_png(16, 16), "image/png")},
        )
        assert response.status_code == 200
        assert 'filename="evil.png"' in response.headers["content-disposition"]

    def test_non_ascii_filename(self, client):
        response = client.post(
            "/api/compress",
            files={"file": ("фото.jpg", make_jpeg(32, 32), "image/jpeg")},
        )
        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('inline; filename="____.jpg"')
        assert "filename*=UTF-8''" + quote("фото.jpg", safe="") in disposition


# ============================================
# Batch
# ============================================

class TestBatch:

    def test_batch_returns_camel_case_json(self, client):
        jpeg = make_jpeg(120, 80, quality=100)
        png = make_png(40, 30)
        response = client.post(
            "/api/compress",
            files=[
                ("images", ("photo.jpg", jpeg, "image/jpeg")),
                ("images", ("logo.png", png, "image/png")),
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Processed 2 images, 2 compressed"
        photo, logo = body["results"]
        assert photo["originalName"] == "photo.jpg"
        assert photo["originalSize"] == len(jpeg)
        assert photo["status"] == "success"
        assert photo["mimeType"] == "image/jpeg"
        assert (photo["width"], photo["height"]) == (120, 80)
        assert len(base64.b64decode(photo["compressedData"])) == photo["compressedSize"]
        assert photo["downloadUrl"].startswith("/api/download/compressed-")
        assert photo["psnr"] is None
        assert logo["mimeType"] == "image/png"

    def test_per_file_failure_does_not_fail_batch(self, client):
        response = client.post(
            "/api/compress",
            files=[
                ("images", ("notes.txt", b"hello", "text/plain")),
                ("images", ("broken.png", b"\x89PNG\r\n\x1a\nbad", "image/png")),
                ("images", ("ok.png", make_png(16, 16), "image/png")),
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Processed 3 images, 1 compressed"
        statuses = [result["status"] for result in body["results"]]
        assert statuses == ["failed", "failed", "success"]
        assert "JPG and PNG" in body["results"][0]["error"]
        assert body["results"][1]["compressedData"] is None

    def test_all_failed_batch_is_not_success(self, client):
        response = client.post("/api/compress", files=[("images", ("a.txt", b"x", "text/plain"))])
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_metrics_flag(self, client):
        response = client.post(
            "/api/compress",
            files=[("images", ("photo.jpg", make_jpeg(64, 64), "image/jpeg"))],
            data={"metrics": "true"},
        )
        result = response.json()["results"][0]
        assert result["psnr"] > 20
        assert 0 < result["ssim"] <= 1

    @pytest.mark.parametrize("quality, expected", [("inf", "100"), ("-inf", "1"), ("nan", None)])
    def test_non_finite_quality_is_clamped(self, client, quality, expected):
        original = make_jpeg(64, 64)
        response = client.post(
            "/api/compress",
            files=[("images", ("a.jpg", original, "image/jpeg"))],
            data={"quality": quality},
        )
        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["status"] == "success"

        reference = client.post(
            "/api/compress",
            files={"file": ("a.jpg", original, "image/jpeg")},
            data={"quality": expected} if expected else {},
        )
        assert base64.b64decode(result["compressedData"]) == reference.content

    def test_non_numeric_quality_is_rejected(self, client):
        response = client.post(
            "/api/compress",
            files=[("images", ("a.jpg", make_jpeg(16, 16), "image/jpeg"))],
            data={"quality": "high"},
        )
        assert response.status_code == 422

    def test_too_many_files(self, client, small_limits):
        files = [("images", (f"{i}.png", make_png(4, 4, seed=i), "image/png")) for i in range(3)]
        response = client.post("/api/compress", files=files)
        assert response.status_code == 400

    def test_no_files(self, client):
        response = client.post("/api/compress", data={"quality": "50"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No files provided"

    def test_file_and_images_together(self, client):
        png = make_png(8, 8)
        response = client.post(
            "/api/compress",
            files=[("file", ("a.png", png, "image/png")), ("images", ("b.png", png, "image/png"))],
        )
        assert response.status_code == 400


# ============================================
# Stored artifacts
# ============================================

class TestArtifacts:

    def _upload(self, client):
        response = client.post(
            "/api/compress",
            files=[("images", ("holiday.png", make_png(24, 24), "image/png"))],
        )
        return response.json()["results"][0]

    def test_download_uses_original_name(self, client):
        result = self._upload(client)
        response = client.get(result["downloadUrl"])

        assert response.status_code == 200
        assert response.content == base64.b64decode(result["compressedData"])
        assert "holiday.png" in response.headers["content-disposition"]

    def test_info(self, client):
        result = self._upload(client)
        filename = result["downloadUrl"].rsplit("/", 1)[-1]
        info = client.get(f"/api/info/{filename}").json()

        assert info["filename"] == filename
        assert info["size"] == result["compressedSize"]

    def test_unknown_artifact_is_404(self, client):
        assert client.get("/api/download/compressed-missing.png").status_code == 404
        assert client.get("/api/info/compressed-missing.png").status_code == 404

    def test_path_traversal_is_404(self, client):
        assert client.get("/api/download/..%2F..%2Fetc%2Fpasswd").status_code == 404


# ============================================
# Lifespan
# ============================================

class TestLifespan:

    def test_shutdown_removes_artifacts(self):
        with TestClient(app):
            filename = store_artifact(b"data", "a.png")
            assert artifact_path(filename) is not None
        assert not os.path.isdir(TEMP_DIR)
        os.makedirs(TEMP_DIR, exist_ok=True)
