import io
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from converter.main import app

BOUNDARY = "testboundary7MA4YWxkTrZu0gW"
MULTIPART_CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def make_image(fmt: str = "JPEG", size=(64, 48), mode: str = "RGB", color="red") -> bytes:
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def file_part(data: bytes, filename: Optional[str] = "photo.jpg", content_type: Optional[str] = "image/jpeg", name: str = "file"):
    return (name, filename, content_type, data)


def field_part(name: str, value: str):
    return (name, None, None, value.encode())


def multipart_body(parts, boundary: str = BOUNDARY) -> bytes:
    """Encode (name, filename, content_type, data) tuples as multipart/form-data."""
    chunks = []
    for name, filename, content_type, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        head = f"--{boundary}\r\nContent-Disposition: {disposition}\r\n"
        if content_type:
            head += f"Content-Type: {content_type}\r\n"
        chunks.append(head.encode() + b"\r\n" + data + b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode())
    return b"".join(chunks)


async def chunked(data: bytes, size: int = 1024):
    for i in range(0, len(data), size):
        yield data[i:i + size]


async def collect(body) -> bytes:
    out = bytearray()
    async for chunk in body:
        out += chunk
    return bytes(out)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG", (64, 48))
