import logging
import uuid

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from app.errors import UploadError

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per call
DELETE_BATCH_SIZE = 1000


def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=current_app.config["S3_ENDPOINT_URL"] or None,
        aws_access_key_id=current_app.config["S3_ACCESS_KEY"] or None,
        aws_secret_access_key=current_app.config["S3_SECRET_KEY"] or None,
        region_name=current_app.config["S3_REGION"],
        config=BotoConfig(signature_version="s3v4"),
    )


def get_public_url(storage_key):
    """Return the public URL for a storage key."""
    base = current_app.config["S3_PUBLIC_URL"].rstrip("/")
    if base:
        return f"{base}/{storage_key}"
    bucket = current_app.config["S3_BUCKET_NAME"]
    region = current_app.config["S3_REGION"]
    return f"https://{bucket}.s3.{region}.amazonaws.com/{storage_key}"


def upload(storage_key, data, content_type="image/jpeg"):
    """Upload bytes to S3."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    client.put_object(
        Bucket=bucket,
        Key=storage_key,
        Body=data,
        ContentType=content_type,
    )


def upload_many(payloads, path_prefix):
    """Upload prepared image payloads under ``path_prefix``.

    All-or-nothing: if any upload fails, the ones already written in this
    call are removed and UploadError is raised.

    Returns:
        list of {"url": ..., "key": ...} in payload order
    """
    results = []
    prefix = path_prefix.strip("/")
    try:
        for payload in payloads:
            key = f"{prefix}/{uuid.uuid4().hex}.jpg"
            upload(key, payload["data"], payload.get("content_type", "image/jpeg"))
            results.append({"url": get_public_url(key), "key": key})
    except (BotoCoreError, ClientError) as e:
        logger.error(
            "Upload to %s failed after %d of %d files: %s",
            prefix, len(results), len(payloads), e,
        )
        delete_many_quietly([r["key"] for r in results])
        raise UploadError("Failed to upload variant images") from e

    logger.info("Uploaded %d images to %s", len(results), prefix)
    return results


def delete(storage_key):
    """Delete an object from S3."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    client.delete_object(Bucket=bucket, Key=storage_key)


def delete_many(storage_keys):
    """Delete multiple objects from S3."""
    keys = [k for k in storage_keys if k]
    if not keys:
        return
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    for start in range(0, len(keys), DELETE_BATCH_SIZE):
        batch = keys[start:start + DELETE_BATCH_SIZE]
        client.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": k} for k in batch]},
        )


def delete_many_quietly(storage_keys, storage=None):
    """Delete objects, logging and swallowing storage failures.

    ``storage`` defaults to this module; services pass their injected
    storage collaborator.
    """
    keys = [k for k in storage_keys if k]
    if not keys:
        return
    try:
        if storage is None:
            delete_many(keys)
        else:
            storage.delete_many(keys)
    except Exception:
        logger.exception("Failed to delete %d storage objects", len(keys))
