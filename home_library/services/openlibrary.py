import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from home_library.config import settings
from home_library.exceptions import MetadataLookupError

logger = logging.getLogger(__name__)

OPENLIBRARY_BASE_URL = "https://openlibrary.org"
COVERS_BASE_URL = "https://covers.openlibrary.org"


def sanitize_isbn(raw: Optional[str]) -> str:
    """Strip everything except digits and X; return the ISBN-10/13 or "" if the length is wrong."""
    s = re.sub(r"[^0-9Xx]", "", raw or "").upper()
    if len(s) in (10, 13):
        return s
    return ""


def generic_cover_url(isbn: str) -> str:
    return f"{COVERS_BASE_URL}/b/isbn/{isbn}-M.jpg"


def _json_object(resp) -> Optional[dict]:
    """Decode a response body as a JSON object; None when it is not one."""
    try:
        data = resp.json()
    except ValueError:
        return None
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


@dataclass
class BookMetadata:
    """Metadata returned by a lookup, used to pre-fill a draft."""
    isbn: str
    title: str = ""
    authors: List[str] = field(default_factory=list)
    cover_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "authors": self.authors,
            "coverUrl": self.cover_url,
            "isbn": self.isbn,
        }


class OpenLibraryClient:
    """Looks up book metadata by ISBN on Open Library."""

    def __init__(self, timeout: Optional[float] = None, retries: Optional[int] = None,
                 backoff: float = 0.5) -> None:
        self.timeout = settings.openlibrary_timeout if timeout is None else timeout
        self.retries = settings.openlibrary_retries if retries is None else retries
        self.backoff = backoff

    def lookup_by_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """Return metadata for a sanitized ISBN, or None when Open Library has no record.

        The books API is tried first; if it cannot be reached or answers with an
        error status, the edition endpoint is used instead. Raises
        MetadataLookupError when neither endpoint can be reached.
        """
        key = f"ISBN:{isbn}"
        url = f"{OPENLIBRARY_BASE_URL}/api/books?bibkeys={key}&jscmd=data&format=json"
        resp = self._http_get_with_retry(url)
        if resp is not None and resp.status_code == 200:
            data = _json_object(resp)
            if data is not None:
                record = data.get(key)
                if not record or not isinstance(record, dict):
                    logger.info("No Open Library record for %s", isbn)
                    return None
                return self._from_books_api(isbn, record)
            logger.debug("Books API returned an unreadable body for %s", isbn)

        logger.debug("Books API unavailable for %s, trying edition endpoint", isbn)
        fallback = self._http_get_with_retry(f"{OPENLIBRARY_BASE_URL}/isbn/{isbn}.json")
        if fallback is None:
            if resp is None:
                raise MetadataLookupError("Open Library is not reachable.")
            return None
        if fallback.status_code != 200:
            logger.info("No Open Library edition for %s (status %s)", isbn, fallback.status_code)
            return None
        data = _json_object(fallback)
        if data is None:
            logger.info("Unreadable Open Library edition for %s", isbn)
            return None
        return BookMetadata(isbn=isbn, title=data.get("title") or "", cover_url=generic_cover_url(isbn))

    @staticmethod
    def _from_books_api(isbn: str, record: dict) -> BookMetadata:
        authors = [a.get("name") for a in record.get("authors") or [] if isinstance(a, dict) and a.get("name")]
        cover = record.get("cover") or {}
        cover_url = cover.get("medium") or cover.get("large") or cover.get("small") or generic_cover_url(isbn)
        return BookMetadata(isbn=isbn, title=record.get("title") or "", authors=authors, cover_url=cover_url)

    def _http_get_with_retry(self, url: str) -> Optional[httpx.Response]:
        """Retry wrapper around httpx.get for transient network errors. Returns None once retries run out."""
        for attempt in range(self.retries):
            try:
                return httpx.get(url, timeout=self.timeout)
            except httpx.RequestError as exc:
                logger.debug("Request to %s failed (attempt %d): %s", url, attempt + 1, exc)
                if attempt < self.retries - 1:
                    time.sleep(self.backoff * (2 ** attempt))
        return None
