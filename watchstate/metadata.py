"""TMDB client for series metadata."""

from typing import Optional

import requests


class MetadataError(Exception):
    """Metadata lookup error."""

    pass


class MetadataClient:
    """Client for The Movie Database API."""

    API_URL = "https://api.themoviedb.org/3"
    IMAGE_URL = "https://image.tmdb.org/t/p/w342"

    def __init__(self, api_key: str, language: str = "en-US"):
        """Initialize TMDB client."""
        if not api_key:
            raise ValueError("api_key cannot be empty")
        self.api_key = api_key
        self.language = language
        self._cache: dict = {}

    def _get_params(self) -> dict:
        """Build query parameters."""
        return {"api_key": self.api_key, "language": self.language}

    def test_connection(self) -> bool:
        """Test connection to TMDB.

        Returns True if the API key is accepted, False otherwise.
        """
        url = f"{self.API_URL}/configuration"

        try:
            response = requests.get(url, params=self._get_params(), timeout=10)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def get_series(self, tmdb_id: int) -> dict:
        """Look up a series by TMDB id.

        Returns dict with title, genres, poster and status.
        """
        if tmdb_id in self._cache:
            return self._cache[tmdb_id]

        url = f"{self.API_URL}/tv/{tmdb_id}"

        try:
            response = requests.get(url, params=self._get_params(), timeout=30)
        except requests.RequestException as e:
            raise MetadataError(f"Cannot connect to TMDB: {e}")

        if response.status_code == 401:
            raise MetadataError("Invalid TMDB API key")
        if response.status_code == 404:
            raise MetadataError(f"Series not found: {tmdb_id}")
        if response.status_code != 200:
            raise MetadataError(f"TMDB error: {response.status_code}")

        data = response.json()
        result = {
            "title": data.get("name") or data.get("original_name", ""),
            "genres": [g.get("name") for g in data.get("genres", []) if g.get("name")],
            "poster": self._poster_url(data.get("poster_path")),
            "status": data.get("status"),
        }
        self._cache[tmdb_id] = result
        return result

    def _poster_url(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        return f"{self.IMAGE_URL}{path}"
