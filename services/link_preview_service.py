# services/link_preview_service.py
from __future__ import annotations

from typing import Optional, Dict, Any, Protocol, runtime_checkable
from urllib.parse import urljoin, urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

from app.config import settings
from app.core.logging import logger
from app.models.map_news import RawResult, SceneAsset


class EnrichmentError(RuntimeError):
    """A single enrichment lookup failed; the item simply gets no asset."""


class EnrichmentCancelledError(EnrichmentError):
    pass


@runtime_checkable
class EnrichmentProvider(Protocol):
    async def fetch_asset(self, raw: RawResult) -> Optional[SceneAsset]: ...


class LinkPreviewService:
    """Looks up a preview image for a result via Open Graph / Twitter card tags."""

    def __init__(
        self,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = httpx.Timeout(timeout_s if timeout_s is not None else settings.ENRICHMENT_TIMEOUT_S)
        # Browser-like UA; a lot of venue sites block obvious bots
        self.user_agent = (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
        self._client = client or httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._default_headers(),
            follow_redirects=True,
        )

    async def aclose(self):
        await self._client.aclose()

    def _default_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    def normalize_url(self, url: str) -> str:
        """
        Normalize URL: ensure a scheme, lowercase the domain, drop a trailing
        slash. Path and query case are preserved.
        """
        url = url.strip()
        if not url.startswith(("http://", "https://")):
            url = "https://" + url

        parsed = urlparse(url)
        path = parsed.path.rstrip("/") if parsed.path != "/" else parsed.path
        return urlunparse((
            parsed.scheme.lower() if parsed.scheme else "https",
            parsed.netloc.lower(),
            path,
            parsed.params,
            parsed.query,
            parsed.fragment
        ))

    def _meta_content(self, soup: BeautifulSoup, **attrs: str) -> Optional[str]:
        tag = soup.find("meta", attrs=attrs)
        if tag is None:
            return None
        content = (tag.get("content") or "").strip()
        return content or None

    def parse_opengraph(self, html_text: str, base_url: str) -> Dict[str, Any]:
        """Extract title and image from Open Graph tags, falling back to Twitter cards and <title>."""
        soup = BeautifulSoup(html_text, "html.parser")
        preview: Dict[str, Any] = {}

        title = self._meta_content(soup, property="og:title") or self._meta_content(soup, name="twitter:title")
        if not title:
            title_tag = soup.find("title")
            if title_tag and title_tag.get_text().strip():
                title = title_tag.get_text().strip()
        if title:
            preview["title"] = title

        image_url = (
            self._meta_content(soup, property="og:image")
            or self._meta_content(soup, property="og:image:url")
            or self._meta_content(soup, name="twitter:image")
        )
        if image_url:
            # Resolve against the page URL
            if not image_url.startswith(("http://", "https://")):
                image_url = urljoin(base_url, image_url)
            preview["image_url"] = image_url

        return preview

    async def fetch_opengraph(self, url: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug("opengraph_fetch_failed", url=url, error=str(e))
            raise EnrichmentError(f"Preview fetch failed for {url}: {e}") from e

        return self.parse_opengraph(response.text, str(response.url))

    async def fetch_asset(self, raw: RawResult) -> Optional[SceneAsset]:
        """Return a SceneAsset for the result's website, or None when it has no usable image."""
        if not raw.url:
            return None

        normalized_url = self.normalize_url(raw.url)
        og_data = await self.fetch_opengraph(normalized_url)
        image_url = og_data.get("image_url")
        if not image_url:
            return None

        return SceneAsset(
            image_url=image_url,
            title=og_data.get("title"),
            source_url=normalized_url,
        )
