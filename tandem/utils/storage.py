import datetime
from typing import Optional
from google.cloud import storage as gcs_storage
from tandem.config import get_settings

def get_storage_client():
    return gcs_storage.Client(project=get_settings().GCP_PROJECT_ID or None)

def get_bucket():
    client = get_storage_client()
    return client.bucket(get_settings().GCS_BUCKET_NAME)

def generate_signed_url(path: str, expiry_minutes: int = 60) -> str:
    """Generate a signed URL for temporary access to a GCS object."""
    bucket = get_bucket()
    blob = bucket.blob(path)
    url = blob.generate_signed_url(
        version="v4",
        expiration=datetime.timedelta(minutes=expiry_minutes),
        method="GET",
    )
    return url

def resolve_media_url(ref: Optional[str]) -> Optional[str]:
    """Turn a stored photo/attachment ref into a URL a client can fetch.

    Refs that are already URLs pass through.  Without a configured bucket
    there is nothing to sign, so bare refs resolve to ``None``.
    """
    if not ref:
        return None
    if ref.startswith(("http://", "https://")):
        return ref
    settings = get_settings()
    if not settings.GCS_BUCKET_NAME:
        return None
    path = ref
    prefix = f"gs://{settings.GCS_BUCKET_NAME}/"
    if path.startswith(prefix):
        path = path[len(prefix):]
    return generate_signed_url(path, expiry_minutes=settings.MEDIA_URL_EXPIRY_MINUTES)
