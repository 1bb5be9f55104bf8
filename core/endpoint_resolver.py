# core/endpoint_resolver.py
"""Maps logical gateway paths onto backend URLs"""

from typing import Sequence


class EndpointResolver:
    """
    The backend serves a REST surface under /api/... and an RPC surface
    under /api/method/... Callers only pass the logical path; the resolver
    picks the surface.
    """

    REST_SEGMENT = 'api'
    RPC_PREFIX = 'api/method'

    def __init__(self, base_url: str):
        """
        Args:
            base_url: Backend origin, e.g. https://dms.salasah.sa
        """
        if not base_url:
            raise ValueError("Backend base URL is required")
        self.base_url = base_url.rstrip('/')

    def resolve(self, segments: Sequence[str]) -> str:
        """
        Args:
            segments: Non-empty path segments, e.g. ["dms.api.dashboard.get_dashboard_summary"]

        Returns:
            str: Fully-qualified backend URL
        """
        if not segments:
            raise ValueError("Cannot resolve an empty path")
        if any(not segment for segment in segments):
            raise ValueError(f"Empty path segment in {list(segments)!r}")

        path = '/'.join(segments)
        if segments[0] == self.REST_SEGMENT:
            return f"{self.base_url}/{path}"
        return f"{self.base_url}/{self.RPC_PREFIX}/{path}"

    def resolve_path(self, path: str) -> str:
        """Resolves a slash-joined route path like 'api/resource/Project'"""
        return self.resolve([part for part in path.split('/') if part])
