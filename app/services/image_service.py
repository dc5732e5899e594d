import io
from PIL import Image as PILImage, UnidentifiedImageError


ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
JPEG_QUALITY = 90


def validate_image(image_bytes):
    """Check a variant image and re-encode it as JPEG.

    Re-encoding drops EXIF and any trailing payload, so every stored
    variant image is a plain JPEG regardless of what was uploaded.

    Raises:
        ValueError when the bytes are empty, too large or not an image
    """
    size = len(image_bytes or b"")
    if size == 0:
        raise ValueError("Empty image file")
    if size > MAX_FILE_SIZE:
        raise ValueError(f"Image too large: {size} bytes (max {MAX_FILE_SIZE})")

    try:
        with PILImage.open(io.BytesIO(image_bytes)) as probe:
            probe.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValueError("Invalid image file")

    # verify() leaves the image unusable, decode again for the re-encode
    with PILImage.open(io.BytesIO(image_bytes)) as img:
        rgb = img if img.mode in ("RGB", "L") else img.convert("RGB")
        out = io.BytesIO()
        rgb.save(out, format="JPEG", quality=JPEG_QUALITY)
    return out.getvalue()


def prepare_upload(file):
    """Turn an uploaded file (werkzeug ``FileStorage`` or similar) into an
    upload payload for storage_service.upload_many.

    Raises:
        ValueError when the content type is not allowed or the bytes are
        not a valid image.
    """
    content_type = (getattr(file, "mimetype", None) or "").lower()
    filename = getattr(file, "filename", None) or ""
    if content_type and content_type not in ALLOWED_CONTENT_TYPES:
        raise ValueError(f"Unsupported image type for {filename or 'upload'}: {content_type}")

    stream = getattr(file, "stream", file)
    if hasattr(stream, "seek"):
        stream.seek(0)
    data = validate_image(stream.read())

    return {
        "data": data,
        "content_type": "image/jpeg",
        "filename": filename,
    }
