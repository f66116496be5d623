import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from requests.structures import CaseInsensitiveDict


def _headers(values: Optional[Mapping[str, str]] = None) -> CaseInsensitiveDict:
    return CaseInsensitiveDict(dict(values or {}))


@dataclass
class ResourceResponse:
    """A fully buffered HTTP-like response, as fetched or as cached."""

    body: bytes = b""
    """Raw response body"""

    status: int = 200
    """HTTP status code"""

    status_text: str = "OK"
    """Reason phrase"""

    headers: CaseInsensitiveDict = field(default_factory=_headers)
    """Response headers (case-insensitive)"""

    url: str = ""
    """Final URL the response was served from, after redirects"""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, CaseInsensitiveDict):
            self.headers = _headers(self.headers)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid UTF-8 JSON.
        """
        return json.loads(self.text())
