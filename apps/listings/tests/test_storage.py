"""Photo storage tests with a mocked S3 client."""

from io import BytesIO
from unittest import mock

import pytest
from botocore.exceptions import ClientError
from django.core.files.base import ContentFile
from PIL import Image

from shared.infrastructure.storage import InvalidImageError, S3PhotoStorage


def _image_file(mode="RGB", size=(3000, 1500), fmt="PNG"):
    buffer = BytesIO()
    Image.new(mode, size, (10, 80, 160, 255)[: len(mode)]).save(buffer, format=fmt)
    return ContentFile(buffer.getvalue(), name=f"upload.{fmt.lower()}")


@pytest.fixture
def s3_settings(settings):
    settings.S3_BUCKET_NAME = "dokkerr-test"
    settings.S3_PUBLIC_BASE = ""
    settings.S3_ENDPOINT_URL = "http://minio:9000"
    settings.PHOTO_MAX_DIMENSION = 1024
    return settings


@pytest.fixture
def s3_client():
    client = mock.MagicMock()
    client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")
    with mock.patch("shared.infrastructure.storage.boto3.client", return_value=client):
        yield client


def test_save_downscales_and_uploads_thumbnail(s3_settings, s3_client):
    storage = S3PhotoStorage()
    key = storage.save("listings/photos/upload.png", _image_file())

    assert key.startswith("listings/photos/")
    assert key.endswith(".jpg")
    assert s3_client.put_object.call_count == 2
    main_call, thumb_call = s3_client.put_object.call_args_list
    assert main_call.kwargs["Key"] == key
    assert main_call.kwargs["Metadata"]["width"] == "1024"
    assert thumb_call.kwargs["Key"] == key[: -len(".jpg")] + "_thumb.jpg"
    assert thumb_call.kwargs["ContentType"] == "image/jpeg"


def test_transparent_images_are_stored_as_webp(s3_settings, s3_client):
    storage = S3PhotoStorage()
    key = storage.save("listings/photos/logo.png", _image_file(mode="RGBA", size=(200, 200)))
    assert key.endswith(".webp")


def test_rejects_non_images(s3_settings, s3_client):
    storage = S3PhotoStorage()
    with pytest.raises(InvalidImageError):
        storage.save("listings/photos/notes.png", ContentFile(b"not an image", name="notes.png"))
    s3_client.put_object.assert_not_called()


def test_url_prefers_public_base(s3_settings, s3_client):
    s3_settings.S3_PUBLIC_BASE = "https://cdn.dokkerr.test/"
    storage = S3PhotoStorage()
    assert storage.url("listings/photos/a.jpg") == "https://cdn.dokkerr.test/listings/photos/a.jpg"
    assert storage.get_thumbnail_url("listings/photos/a.jpg") == "https://cdn.dokkerr.test/listings/photos/a_thumb.jpg"


def test_url_falls_back_to_endpoint_path(s3_settings, s3_client):
    storage = S3PhotoStorage()
    assert storage.url("listings/photos/a.jpg") == "http://minio:9000/dokkerr-test/listings/photos/a.jpg"
