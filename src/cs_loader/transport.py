"""
CloudSearch document-service transport.

Wraps the boto3 ``cloudsearchdomain`` client. Status "error" responses come
back as an UploadResult; anything that stops the request itself is raised
as TransportFault.
"""

from __future__ import annotations

from typing import Callable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from .config import Settings
from .errors import map_transport_error
from .models import UploadResult

CONTENT_TYPE_JSON = "application/json"


class CloudSearchTransport:
    def __init__(
        self,
        endpoint: str,
        region: str,
        *,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 120.0,
    ):
        if not endpoint:
            raise ValueError("document endpoint required")
        if not endpoint.startswith(("http://", "https://")):
            endpoint = f"https://{endpoint}"
        self.endpoint = endpoint
        self._client = boto3.client(
            "cloudsearchdomain",
            endpoint_url=endpoint,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            # retries would break the one-batch-per-interval floor
            config=Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )
        self._closed = False

    def upload(self, payload: bytes, content_length: int) -> UploadResult:
        if self._closed:
            raise RuntimeError("CloudSearchTransport is closed")
        if content_length != len(payload):
            raise ValueError(f"content_length {content_length} != payload size {len(payload)}")
        try:
            resp = self._client.upload_documents(documents=payload, contentType=CONTENT_TYPE_JSON)
        except (ClientError, BotoCoreError) as e:
            # includes DocumentServiceException: the request itself was refused
            raise map_transport_error(e) from e
        return UploadResult.from_response(resp)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()


def transport_factory(settings: Settings) -> Callable[[], CloudSearchTransport]:
    """Return a zero-arg callable building a new transport from settings."""

    def _build() -> CloudSearchTransport:
        logger.debug(f"Building CloudSearch client for {settings.AWS_CS_DOC_ENDPOINT}")
        return CloudSearchTransport(
            settings.AWS_CS_DOC_ENDPOINT or "",
            settings.AWS_SIGNING_REGION,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    return _build
