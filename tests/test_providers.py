from io import BytesIO
from types import SimpleNamespace

import cloudinary.uploader
import httpx
import pytest
from PIL import Image

import composer
import storage
from errors import CompositionFailed, StorageFailed
from settings import settings


def png_bytes() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 90)).save(buffer, format="PNG")
    return buffer.getvalue()


def gemini_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


# --- composer ---

async def test_fetch_image_reads_mime_type():
    def handler(request):
        return httpx.Response(200, content=b"img", headers={"content-type": "image/png; charset=binary"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        data, mime = await composer.fetch_image(client, "https://cdn.example.com/a.png")

    assert data == b"img"
    assert mime == "image/png"


async def test_fetch_image_maps_http_errors():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))) as client:
        with pytest.raises(CompositionFailed) as exc_info:
            await composer.fetch_image(client, "https://cdn.example.com/missing.png")

    assert exc_info.value.status_code == 502


async def test_extract_image_returns_first_inline_part():
    text_part = SimpleNamespace(inline_data=None, text="Here you go")
    image_part = SimpleNamespace(inline_data=SimpleNamespace(data=b"first"), text=None)
    later_part = SimpleNamespace(inline_data=SimpleNamespace(data=b"second"), text=None)

    assert composer.extract_image(gemini_response(text_part, image_part, later_part)) == b"first"


async def test_extract_image_without_image_fails():
    text_part = SimpleNamespace(inline_data=None, text="I cannot do that")

    with pytest.raises(CompositionFailed):
        composer.extract_image(gemini_response(text_part))


async def test_verify_image():
    composer.verify_image(png_bytes())
    with pytest.raises(CompositionFailed):
        composer.verify_image(b"definitely not an image")


IMAGES = {
    "https://cdn.example.com/people/maria.png": (b"subject-bytes", "image/png"),
    "https://cdn.example.com/garments/vestido.jpg": (b"garment-bytes", "image/jpeg"),
}


@pytest.fixture
def image_cdn(monkeypatch):
    def handler(request):
        data, mime = IMAGES[str(request.url)]
        return httpx.Response(200, content=data, headers={"content-type": mime})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        composer.httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def fake_gemini(monkeypatch, generate_content):
    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
    monkeypatch.setattr(composer, "get_client", lambda: client)


async def test_compose_sends_subject_garment_then_instruction(monkeypatch, image_cdn):
    requests = []
    composite = png_bytes()

    async def generate_content(model, contents, config):
        requests.append((model, contents, config))
        return gemini_response(SimpleNamespace(inline_data=SimpleNamespace(data=composite), text=None))

    fake_gemini(monkeypatch, generate_content)

    result = await composer.compose_try_on(
        "https://cdn.example.com/people/maria.png",
        "https://cdn.example.com/garments/vestido.jpg",
        "Dress the person.",
    )

    assert result == composite
    model, contents, config = requests[0]
    assert model == settings.GEMINI_IMAGE_MODEL
    subject, garment, instruction = contents[0].parts
    assert (subject.inline_data.data, subject.inline_data.mime_type) == (b"subject-bytes", "image/png")
    assert (garment.inline_data.data, garment.inline_data.mime_type) == (b"garment-bytes", "image/jpeg")
    assert instruction.text == "Dress the person."
    assert config.response_modalities == ["TEXT", "IMAGE"]


async def test_compose_maps_provider_errors(monkeypatch, image_cdn):
    async def generate_content(model, contents, config):
        raise RuntimeError("quota exceeded")

    fake_gemini(monkeypatch, generate_content)

    with pytest.raises(CompositionFailed) as exc_info:
        await composer.compose_try_on(
            "https://cdn.example.com/people/maria.png",
            "https://cdn.example.com/garments/vestido.jpg",
            "Dress the person.",
        )

    assert exc_info.value.status_code == 502


async def test_missing_gemini_key_is_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    composer.get_client.cache_clear()

    with pytest.raises(CompositionFailed) as exc_info:
        composer.get_client()

    assert exc_info.value.status_code == 503


# --- storage ---

@pytest.fixture
def cloudinary_configured(monkeypatch):
    monkeypatch.setattr(settings, "CLOUDINARY_CLOUD_NAME", "demo")
    monkeypatch.setattr(settings, "CLOUDINARY_API_KEY", "key")
    monkeypatch.setattr(settings, "CLOUDINARY_API_SECRET", "secret")
    storage._configure_cloudinary.cache_clear()
    yield
    storage._configure_cloudinary.cache_clear()


async def test_upload_returns_secure_url(monkeypatch, cloudinary_configured):
    uploads = []

    def fake_upload(file, **options):
        uploads.append((file.read(), options))
        return {"secure_url": "https://res.cloudinary.com/demo/image/upload/v1/generated/u1/123.png"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

    url = await storage.upload_image(b"bytes", folder=storage.generated_folder("u1"), public_id="123")

    assert url == "https://res.cloudinary.com/demo/image/upload/v1/generated/u1/123.png"
    data, options = uploads[0]
    assert data == b"bytes"
    assert options["folder"] == "generated/u1"
    assert options["public_id"] == "123"


async def test_upload_failure_is_storage_failure(monkeypatch, cloudinary_configured):
    def broken_upload(file, **options):
        raise RuntimeError("network down")

    monkeypatch.setattr(cloudinary.uploader, "upload", broken_upload)

    with pytest.raises(StorageFailed) as exc_info:
        await storage.upload_image(b"bytes", folder="generated/u1", public_id="123")

    assert exc_info.value.status_code == 502


async def test_missing_cloudinary_keys_is_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "CLOUDINARY_CLOUD_NAME", "")
    storage._configure_cloudinary.cache_clear()

    with pytest.raises(StorageFailed) as exc_info:
        await storage.upload_image(b"bytes", folder="generated/u1", public_id="123")

    assert exc_info.value.status_code == 503
