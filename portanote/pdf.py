"""Client for the remote HTML-to-PDF rendering service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import requests

from .exporters import PdfApiError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
UNEXPECTED_RESPONSE = "Unexpected PDF API response."

StatusCallback = Callable[[str], None]


@dataclass(slots=True, frozen=True)
class PdfOptions:
    """Page size and readiness options sent with a render request."""

    width: int
    height: int
    wait_for: str = ""
    timeout: int = 60000


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    return session


class PdfApiClient:
    """Drive the upload/render/download protocol of the PDF service.

    1. ``POST {"action": "getUploadUrl"}`` returns ``uploadUrl`` and ``s3Key``.
    2. ``PUT`` the HTML document to ``uploadUrl``.
    3. ``POST`` the render request; the reply carries ``downloadUrl`` or ``error``.
    4. ``GET`` the PDF bytes from ``downloadUrl``.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.session = session or create_session()

    def _call_api(
        self,
        body: dict[str, Any],
        on_status: StatusCallback | None,
        *,
        timeout: float = REQUEST_TIMEOUT,
    ) -> dict[str, Any]:
        if on_status:
            on_status("Requesting PDF service...")
        try:
            response = self.session.post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise PdfApiError(f"PDF service request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            raise PdfApiError(str(data["error"]))
        if not response.ok:
            raise PdfApiError(f"PDF service returned HTTP {response.status_code}")
        if not isinstance(data, dict):
            raise PdfApiError(UNEXPECTED_RESPONSE)
        return data

    def _upload(self, upload_url: str, html: str, on_status: StatusCallback | None) -> None:
        if on_status:
            on_status("Uploading HTML...")
        try:
            response = self.session.put(
                upload_url,
                data=html.encode("utf-8"),
                headers={"Content-Type": "text/html"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PdfApiError(f"HTML upload failed: {exc}") from exc

    def _download(self, download_url: str, on_status: StatusCallback | None) -> bytes:
        if on_status:
            on_status("Downloading PDF...")
        try:
            response = self.session.get(download_url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PdfApiError(f"PDF download failed: {exc}") from exc
        return response.content

    def render(
        self,
        html: str,
        filename: str,
        options: PdfOptions,
        *,
        on_status: StatusCallback | None = None,
    ) -> bytes:
        """Return the PDF bytes for ``html``; raises ``PdfApiError`` on any failure."""

        upload = self._call_api({"action": "getUploadUrl"}, on_status)
        upload_url = upload.get("uploadUrl")
        s3_key = upload.get("s3Key")
        if not upload_url or not s3_key:
            raise PdfApiError(UNEXPECTED_RESPONSE)

        self._upload(upload_url, html, on_status)

        request: dict[str, Any] = {
            "s3Key": s3_key,
            "width": options.width,
            "height": options.height,
            "filename": filename,
            "timeout": options.timeout,
        }
        if options.wait_for:
            request["waitFor"] = options.wait_for
        logger.info("Requesting PDF render of %s (%dx%d)", filename, options.width, options.height)
        result = self._call_api(
            request, on_status, timeout=REQUEST_TIMEOUT + options.timeout / 1000
        )
        download_url = result.get("downloadUrl")
        if not download_url:
            raise PdfApiError(UNEXPECTED_RESPONSE)
        return self._download(download_url, on_status)


__all__ = ["PdfApiClient", "PdfOptions", "create_session"]
