import io

from fastapi.testclient import TestClient
from PIL import Image

from conftest import MULTIPART_CONTENT_TYPE, field_part, file_part, make_image, multipart_body
from converter.api import routes
from converter.main import app

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def _post(client, parts, query=""):
    return client.post(
        f"/convert{query}",
        content=multipart_body(parts),
        headers={"content-type": MULTIPART_CONTENT_TYPE},
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_supported_formats(client):
    response = client.get("/convert")
    assert response.status_code == 200
    supported = response.json()["supported"]
    assert supported[:2] == ["jpeg", "png"]
    assert set(supported) <= {"jpeg", "png", "webp", "tiff"}


def test_non_multipart_rejected_before_body(client):
    response = client.post("/convert?format=png", content=b"{}", headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert response.text == 'Use multipart/form-data with a "file" field.'


def test_unsupported_output_format(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes)], "?format=gif")
    assert response.status_code == 400
    assert response.text.startswith('Unsupported output format "gif". Supported: ')
    assert "jpeg/jpg" in response.text


def test_jpeg_to_png_round_trip(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes, "photo.jpg")], "?format=png")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-disposition"] == 'attachment; filename="photo.png"'
    assert response.content.startswith(PNG_SIGNATURE)
    with Image.open(io.BytesIO(response.content)) as img:
        assert img.size == (64, 48)


def test_jpg_and_jpeg_are_equivalent(client):
    source = make_image("PNG", (20, 20))
    for value in ("jpg", "JPEG"):
        response = _post(client, [file_part(source, "icon.png", "image/png")], f"?format={value}")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["content-disposition"] == 'attachment; filename="icon.jpg"'


def test_default_output_is_webp(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes)])
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/webp"
    assert response.content[:4] == b"RIFF" and response.content[8:12] == b"WEBP"


def test_cover_resize(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes)], "?format=png&w=10&h=30")
    with Image.open(io.BytesIO(response.content)) as img:
        assert img.size == (10, 30)


def test_width_only_resize(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes)], "?format=png&w=128&quality=oops")
    with Image.open(io.BytesIO(response.content)) as img:
        assert img.size == (128, 96)


def test_non_numeric_dimensions_ignored(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes)], "?format=png&w=abc&h=")
    with Image.open(io.BytesIO(response.content)) as img:
        assert img.size == (64, 48)


def test_no_file(client):
    response = _post(client, [field_part("caption", "hello")], "?format=png")
    assert response.status_code == 400
    assert response.text == "Conversion failed: No file received"


def test_bmp_input_rejected(client):
    response = _post(client, [file_part(make_image("BMP"), "pic.bmp", "image/bmp")], "?format=png")
    assert response.status_code == 400
    assert response.text.startswith('Conversion failed: Unsupported input "image/bmp"')
    assert "image/png" in response.text


def test_only_first_of_two_files_converted(client):
    parts = [
        file_part(make_image("JPEG", (12, 8)), "one.jpg"),
        file_part(make_image("JPEG", (40, 40)), "two.jpg"),
    ]
    response = _post(client, parts, "?format=png")
    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="one.png"'
    with Image.open(io.BytesIO(response.content)) as img:
        assert img.size == (12, 8)


def test_filename_path_segments_removed(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes, "../../secret/passwd.jpg")], "?format=tiff")
    assert response.headers["content-type"] == "image/tiff"
    assert response.headers["content-disposition"] == 'attachment; filename="passwd.tiff"'


def test_missing_filename_falls_back_to_image(client, jpeg_bytes):
    response = _post(client, [file_part(jpeg_bytes, "")], "?format=png")
    assert response.headers["content-disposition"] == 'attachment; filename="image.png"'


def test_late_decode_failure_keeps_committed_status():
    parts = [file_part(b"not really a png" * 40, "broken.png", "image/png")]
    with TestClient(app, raise_server_exceptions=False) as client:
        response = _post(client, parts, "?format=png")
    assert response.status_code == 200
    assert not response.content.startswith(PNG_SIGNATURE)


def test_deferred_commit_reports_decode_failure(client, monkeypatch):
    monkeypatch.setattr(routes, "COMMIT_ON_FIRST_CHUNK", True)
    parts = [file_part(b"not really a png" * 40, "broken.png", "image/png")]
    response = _post(client, parts, "?format=png")
    assert response.status_code == 400
    assert response.text.startswith("Conversion failed: ")


def test_deferred_commit_success(client, monkeypatch, jpeg_bytes):
    monkeypatch.setattr(routes, "COMMIT_ON_FIRST_CHUNK", True)
    response = _post(client, [file_part(jpeg_bytes)], "?format=png")
    assert response.status_code == 200
    assert response.content.startswith(PNG_SIGNATURE)
