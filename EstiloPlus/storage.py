# storage.py
"""
Object storage for generated images (Cloudinary).

The SDK is configured on first use; uploads run in a worker thread because
the Cloudinary uploader is synchronous.
"""

import asyncio
import functools
import logging
from io import BytesIO

import cloudinary
import cloudinary.uploader
import cloudinary.utils

from errors import StorageFailed
from settings import settings

log = logging.getLogger(__name__)

GENERATED_FOLDER = "generated"


@functools.lru_cache(maxsize=1)
def _configure_cloudinary() -> bool:
    """Configures the Cloudinary SDK once per process."""
    if not (settings.CLOUDINARY_CLOUD_NAME and settings.CLOUDINARY_API_KEY and settings.CLOUDINARY_API_SECRET):
        raise StorageFailed.not_configured("Image storage")
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,  # Always use HTTPS URLs
    )
    log.info("Cloudinary SDK configured successfully.")
    return True


def generated_folder(user_id) -> str:
    """Folder holding one account's generated images."""
    return f"{GENERATED_FOLDER}/{user_id}"


async def upload_image(data: bytes, folder: str, public_id: str) -> str:
    """Uploads image bytes and returns their public HTTPS URL."""
    _configure_cloudinary()

    def sync_upload(upload_data: BytesIO):
        return cloudinary.uploader.upload(
            upload_data,
            folder=folder,
            public_id=public_id,
            resource_type="image",
            overwrite=True,
            unique_filename=False,
        )

    try:
        upload_result = await asyncio.to_thread(sync_upload, BytesIO(data))
    except Exception as e:
        log.error(f"Error uploading file to Cloudinary: {e}", exc_info=True)
        raise StorageFailed()

    secure_url = upload_result.get("secure_url")
    if not secure_url:
        # Some responses omit secure_url; rebuild it from the public id.
        uploaded_id = upload_result.get("public_id")
        if not uploaded_id:
            log.error(f"Cloudinary upload returned no URL or public_id. Result: {upload_result}")
            raise StorageFailed()
        secure_url = cloudinary.utils.cloudinary_url(
            uploaded_id,
            resource_type=upload_result.get("resource_type", "image"),
            version=upload_result.get("version"),
            secure=True,
        )[0]

    log.info(f"File uploaded to Cloudinary: {secure_url}")
    return secure_url
