from xml.etree import ElementTree

import httpx

from lms_storage.core.config import Settings
from lms_storage.integrations.adapters.base import BackendAdapter
from lms_storage.integrations.storage.s3 import public_s3_url


class S3BackendAdapter(BackendAdapter):
    """Query-string signed PUTs; the signature travels in the URL, no auth headers."""

    name = "s3"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def build_public_url(self, key: str) -> str:
        return public_s3_url(self.settings, key)

    def describe_failure(self, response: httpx.Response) -> str:
        status = super().describe_failure(response)
        try:
            root = ElementTree.fromstring(response.text)
        except ElementTree.ParseError:
            return status
        code = root.findtext("Code") or ""
        message = root.findtext("Message") or ""
        detail = ": ".join(part for part in (code, message) if part)
        return f"{status} {detail}" if detail else status
