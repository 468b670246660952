"""
Docker Registry HTTP API V2 client.

Thin wrapper around a single requests.Session that exposes the operations a
pruning run needs: liveness check, tag listing, digest resolution, manifest
retrieval and deletion by digest.

Registry API reference: https://distribution.github.io/distribution/spec/api/
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urljoin

import requests

MANIFEST_MEDIA_TYPES = [
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
]

DIGEST_HEADER = "Docker-Content-Digest"


class RegistryError(Exception):
    """Error returned by the registry, or raised while talking to it.

    Attributes:
        status_code: HTTP status, or None for transport failures
        errors: Server-reported errors, each a dict with code/message/detail
    """

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        self.status_code = status_code
        self.errors = errors or []
        self.message = message
        super().__init__(self._describe())

    def _describe(self) -> str:
        prefix = f"HTTP {self.status_code}: " if self.status_code is not None else ""
        if self.message:
            return f"{prefix}{self.message}"
        if not self.errors:
            return f"{prefix}unexpected error, no extra information provided"
        described = [f"{e.get('code', 'UNKNOWN')}: {e.get('message', '')}".rstrip(": ") for e in self.errors]
        if len(described) == 1:
            return f"{prefix}server returned error: {described[0]}"
        return f"{prefix}multiple errors: {'; '.join(described)}"


class ManifestNotFoundError(RegistryError):
    """Raised when a tag or digest does not exist in the repository."""


def error_from_response(response: requests.Response, message: Optional[str] = None) -> RegistryError:
    """Build a RegistryError from a non-success response.

    For 4xx responses the body is parsed for the registry's
    {"errors": [{"code", "message", "detail"}]} envelope; unparseable bodies
    are ignored.
    """
    errors: List[Dict[str, Any]] = []
    if 400 <= response.status_code < 500:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("errors"), list):
            errors = [e for e in body["errors"] if isinstance(e, dict)]
    return RegistryError(message=message, status_code=response.status_code, errors=errors)


def _next_link(response: requests.Response) -> Optional[str]:
    """Return the URL of the next page if the Link header has rel="next"."""
    link = response.links.get("next")
    if link:
        return link.get("url")
    return None


def normalize_registry_url(registry_url: str) -> str:
    """Add https:// when no scheme is given and strip trailing slashes."""
    url = registry_url.strip().rstrip("/")
    if "://" not in url:
        url = f"https://{url}"
    return url


class RegistryClient:
    """Registry API V2 client bound to one registry for the whole run."""

    def __init__(self, registry_url: str, username: Optional[str] = None, password: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        """Initialize RegistryClient.

        Args:
            registry_url: Registry base URL, e.g. "https://registry.example.com:5000"
            username: Basic auth username (optional)
            password: Basic auth password (optional)
            session: Pre-built session, mainly for tests
        """
        self.registry_url = normalize_registry_url(registry_url)
        self.session = session or requests.Session()
        if username is not None and password is not None:
            self.set_basic_auth(username, password)

    def set_basic_auth(self, username: str, password: str) -> None:
        """Send static basic auth credentials with every request."""
        self.session.auth = (username, password)

    def _url(self, path: str) -> str:
        return f"{self.registry_url}/v2/{path}"

    def _manifest_url(self, repository: str, reference: str) -> str:
        return self._url(f"{repository}/manifests/{quote(reference, safe=':')}")

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Issue a request, wrapping transport failures in RegistryError."""
        logging.debug(f"[registry] {method} {url}")
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise RegistryError(message=f"{method} {url} failed: {e}") from e
        logging.debug(f"[registry] {method} {url} -> {response.status_code}")
        return response

    def check_alive(self) -> None:
        """Check that the server answers the V2 API base endpoint.

        Raises:
            RegistryError: If the server is unreachable or does not return 200
        """
        response = self._request("GET", self._url(""))
        if response.status_code == 200:
            return
        if response.status_code == 404:
            raise RegistryError(message="server down or api unimplemented", status_code=404)
        raise error_from_response(response)

    def list_tags(self, repository: str) -> List[str]:
        """List every tag of a repository, following pagination links.

        Raises:
            RegistryError: If any page cannot be fetched or decoded
        """
        tags: List[str] = []
        url: Optional[str] = self._url(f"{repository}/tags/list")
        while url:
            response = self._request("GET", url)
            if response.status_code != 200:
                raise error_from_response(response)
            try:
                page = response.json()
            except ValueError as e:
                raise RegistryError(message=f"invalid tag list JSON for {repository}: {e}",
                                    status_code=response.status_code) from e
            if not isinstance(page, dict):
                raise RegistryError(message=f"invalid tag list JSON for {repository}: "
                                            f"expected an object, got {type(page).__name__}",
                                    status_code=response.status_code)
            # Repositories with no tags left report "tags": null
            tags.extend(page.get("tags") or [])

            next_link = _next_link(response)
            url = urljoin(self.registry_url + "/", next_link) if next_link else None
        return tags

    def resolve_digest(self, repository: str, tag: str) -> str:
        """Resolve a tag to the digest of the manifest it currently points to.

        Raises:
            ManifestNotFoundError: If the tag does not exist
            RegistryError: On any other failure
        """
        response = self._request("HEAD", self._manifest_url(repository, tag),
                                 headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)})
        if response.status_code == 200:
            digest = response.headers.get(DIGEST_HEADER)
            if not digest:
                raise RegistryError(message=f"no {DIGEST_HEADER} header for {repository}:{tag}", status_code=200)
            return digest
        if response.status_code == 404:
            raise ManifestNotFoundError(message=f"image not found: {repository}:{tag}", status_code=404)
        raise error_from_response(response)

    def pull_manifest(self, repository: str, reference: str) -> Tuple[str, Dict[str, Any]]:
        """Fetch a manifest by tag or digest.

        Returns:
            Tuple of (digest, manifest); the manifest is returned as an
            opaque JSON document
        """
        response = self._request("GET", self._manifest_url(repository, reference),
                                 headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)})
        if response.status_code == 404:
            raise ManifestNotFoundError(message=f"image not found: {repository}:{reference}", status_code=404)
        if response.status_code != 200:
            raise error_from_response(response)
        try:
            manifest = response.json()
        except ValueError as e:
            raise RegistryError(message=f"invalid manifest JSON for {repository}:{reference}: {e}",
                                status_code=response.status_code) from e
        return response.headers.get(DIGEST_HEADER, ""), manifest

    def delete_by_digest(self, repository: str, digest: str) -> None:
        """Delete a manifest by digest. A 404 counts as already deleted.

        Raises:
            RegistryError: If the registry refuses the deletion
        """
        response = self._request("DELETE", self._manifest_url(repository, digest))
        if response.status_code in (200, 202):
            return
        if response.status_code == 404:
            logging.debug(f"{repository}@{digest} already deleted")
            return
        raise error_from_response(response)

    def close(self) -> None:
        self.session.close()
