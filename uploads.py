import logging
import os
import re
import time

from fastapi import HTTPException, UploadFile

from config import Config

logger = logging.getLogger(__name__)


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    return slug or "image"


def is_image(upload: UploadFile) -> bool:
    return bool(upload.content_type) and upload.content_type.startswith("image/")


async def save_image(upload: UploadFile, subdir: str, base_name: str) -> str:
    """
    Write an uploaded image under PUBLIC_DIR/images/<subdir> and return its
    public path ("images/<subdir>/<file>").
    """
    if not is_image(upload):
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    raw = await upload.read()
    if len(raw) > Config.MAX_IMAGE_SIZE:
        raise HTTPException(status_code=400, detail="File too large")

    image_dir = os.path.join(Config.PUBLIC_DIR, "images", subdir)
    os.makedirs(image_dir, exist_ok=True)
    filename = f"{slugify(base_name)}-{int(time.time() * 1000)}.jpg"
    path = os.path.join(image_dir, filename)
    try:
        with open(path, "wb") as fh:
            fh.write(raw)
    except OSError as e:
        logger.error("Error saving image %s: %s", path, e)
        raise HTTPException(status_code=500, detail="Failed to save image")
    logger.info("Saved image %s (%d bytes)", path, len(raw))
    return f"images/{subdir}/{filename}"
