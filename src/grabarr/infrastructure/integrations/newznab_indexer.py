"""Newznab / Torznab search adapter.

Hey future me - both APIs speak the same RSS dialect:

    GET {base_url}/api?t=search&apikey=...&q=...&cat=5030,5040

returns an RSS feed whose <item>s carry the title, link, pubDate, an
<enclosure> and a bag of ``newznab:attr`` / ``torznab:attr`` elements
(size, downloadvolumefactor, ...). Errors come back as HTTP 200 with an
``<error code="100" description="..."/>`` document - don't trust the status code!

EVERY failure the indexer can heal from is raised as TransientIntegrationError
with a reason so the health tracker can back off:

    timeout / connect error    → "timeout"
    HTTP 429, error 500/501    → "rate_limited"
    HTTP 401/403, error 100-102 → "auth_failed"
    other HTTP errors          → "transient"
    unparseable XML            → "invalid_response"
"""

import logging
import xml.etree.ElementTree as ET
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import httpx

from grabarr.domain.entities import RawRelease
from grabarr.domain.entities.release import DEFAULT_INDEXER_PRIORITY
from grabarr.domain.exceptions import TransientIntegrationError
from grabarr.domain.ports import ISearchIndexer
from grabarr.domain.value_objects import DownloadProtocol, IntegrationKey

logger = logging.getLogger(__name__)

NEWZNAB_NS = "http://www.newznab.com/DTD/2010/feeds/attributes/"
TORZNAB_NS = "http://torznab.com/schemas/2015/feed"

AUTH_ERROR_CODES = {100, 101, 102}
RATE_LIMIT_ERROR_CODES = {500, 501}

FREELEECH_FLAG = "freeleech"


class NewznabIndexer(ISearchIndexer):
    """Search adapter for Newznab (usenet) and Torznab (torrent) indexers."""

    def __init__(
        self,
        indexer_id: int,
        name: str,
        base_url: str,
        api_key: str,
        protocol: DownloadProtocol = DownloadProtocol.USENET,
        priority: int = DEFAULT_INDEXER_PRIORITY,
        enabled: bool = True,
        api_path: str = "/api",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            indexer_id: Stable id used for health keys and blocklist fingerprints
            name: Display name
            base_url: Indexer root URL (without /api)
            api_key: API key sent as ``apikey``
            protocol: USENET for Newznab, TORRENT for Torznab
            priority: Lower number wins ties between otherwise equal releases
            enabled: Disabled indexers are never searched
            api_path: Path of the API endpoint
            timeout: HTTP timeout in seconds
            client: Pre-built HTTP client (tests inject one with a MockTransport)
        """
        self.indexer_id = indexer_id
        self.name = name
        self.protocol = protocol
        self.priority = priority
        self.enabled = enabled
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._api_path = api_path
        self._timeout = timeout
        self._client = client

    @property
    def key(self) -> str:
        return str(IntegrationKey.indexer(self.indexer_id))

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Accept": "application/rss+xml, application/xml"},
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str, categories: list[int]) -> list[RawRelease]:
        params: dict[str, str] = {"t": "search", "apikey": self._api_key, "q": query}
        if categories:
            params["cat"] = ",".join(str(c) for c in categories)

        client = await self._get_client()
        try:
            response = await client.get(self._api_path, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise self._error(f"Request timed out: {e}", "timeout") from e
        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response.status_code) from e
        except httpx.TransportError as e:
            raise self._error(f"Connection failed: {e}", "timeout") from e

        releases = self.parse_feed(response.content)
        logger.debug("%s: %d release(s) for '%s'", self.name, len(releases), query)
        return releases

    # =========================================================================
    # PARSING
    # =========================================================================

    def parse_feed(self, content: bytes) -> list[RawRelease]:
        """Parse a Newznab/Torznab RSS document into raw releases.

        Raises:
            TransientIntegrationError: For error documents and broken XML
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise self._error(f"Invalid XML response: {e}", "invalid_response") from e

        if root.tag == "error":
            raise self._api_error(root)

        channel = root.find("channel")
        if channel is None:
            raise self._error("Response has no RSS channel", "invalid_response")

        releases = []
        for item in channel.findall("item"):
            release = self._parse_item(item)
            if release is not None:
                releases.append(release)
        return releases

    def _parse_item(self, item: ET.Element) -> RawRelease | None:
        title = (item.findtext("title") or "").strip()
        if not title:
            return None

        attrs = _attributes(item)
        enclosure = item.find("enclosure")
        download_url = item.findtext("link") or None
        if enclosure is not None and enclosure.get("url"):
            download_url = enclosure.get("url")

        size = _to_int(attrs.get("size"))
        if not size:
            size = _to_int(item.findtext("size"))
        if not size and enclosure is not None:
            size = _to_int(enclosure.get("length"))

        flags: list[str] = []
        if attrs.get("downloadvolumefactor") in ("0", "0.0"):
            flags.append(FREELEECH_FLAG)

        return RawRelease(
            title=title,
            indexer_id=self.indexer_id,
            protocol=self.protocol,
            size=size,
            published_at=_parse_date(item.findtext("pubDate")),
            download_url=download_url,
            indexer_priority=self.priority,
            indexer_flags=tuple(flags),
        )

    # =========================================================================
    # ERRORS
    # =========================================================================

    def _error(self, message: str, reason: str) -> TransientIntegrationError:
        return TransientIntegrationError(
            f"{self.name}: {message}", integration_key=self.key, reason=reason
        )

    def _status_error(self, status_code: int) -> TransientIntegrationError:
        if status_code == 429:
            return self._error("Rate limited (HTTP 429)", "rate_limited")
        if status_code in (401, 403):
            return self._error(f"Authentication failed (HTTP {status_code})", "auth_failed")
        return self._error(f"HTTP {status_code}", "transient")

    def _api_error(self, element: ET.Element) -> TransientIntegrationError:
        code = _to_int(element.get("code"))
        description = element.get("description") or "unknown error"
        if code in AUTH_ERROR_CODES:
            reason = "auth_failed"
        elif code in RATE_LIMIT_ERROR_CODES:
            reason = "rate_limited"
        else:
            reason = "transient"
        return self._error(f"API error {code}: {description}", reason)


def _attributes(item: ET.Element) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for namespace in (NEWZNAB_NS, TORZNAB_NS):
        for attr in item.findall(f"{{{namespace}}}attr"):
            name = attr.get("name")
            value = attr.get("value")
            if name and value is not None:
                attrs.setdefault(name.lower(), value)
    return attrs


def _to_int(value: str | None) -> int:
    if not value:
        return 0
    try:
        return int(value.strip())
    except ValueError:
        return 0


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
