"""The bounded request envelope every routed request is parsed into."""

from __future__ import annotations

from urllib.parse import parse_qs

from pydantic import BaseModel, ConfigDict, Field

from doomstream.config.settings import ServerConfig

DEFAULT_SESSION_ID = 0


class ProtocolMalformed(Exception):
    """Raised when a request exceeds a field bound or cannot be parsed."""


class RequestEnvelope(BaseModel):
    """One request: method, path, query, protocol version, optional body."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    query: str = ""
    version: str = "HTTP/1.1"
    body: bytes = Field(default=b"", repr=False)

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        query: str = "",
        version: str = "HTTP/1.1",
        body: bytes = b"",
        limits: ServerConfig | None = None,
    ) -> RequestEnvelope:
        """Validate field bounds and build the envelope.

        Raises:
            ProtocolMalformed: If any field exceeds its bound.
        """
        limits = limits or ServerConfig()
        for name, value, bound in (
            ("method", method, limits.max_method_length),
            ("path", path, limits.max_path_length),
            ("query", query, limits.max_query_length),
            ("body", body, limits.max_body_bytes),
        ):
            if len(value) > bound:
                raise ProtocolMalformed(f"{name} exceeds {bound} bytes")
        return cls(method=method, path=path, query=query, version=version, body=body)

    @property
    def session_id(self) -> int:
        return parse_session_id(self.query)


def parse_session_id(query: str | None) -> int:
    """Extract ``session=<int>`` from a query string.

    Absent or unparsable values select session 0.
    """
    if not query:
        return DEFAULT_SESSION_ID
    values = parse_qs(query, keep_blank_values=True).get("session")
    if not values:
        return DEFAULT_SESSION_ID
    try:
        return int(values[0].strip())
    except ValueError:
        return DEFAULT_SESSION_ID
