"""PRXS service registry client.

Reads the registry's versioned JSON API, normalizes its responses into
:mod:`prxs_mesh.types` models, caches them in a shared
:class:`~prxs_mesh.cache.TTLCache`, and resolves which bootstrap multiaddr
the node binary should dial.

Usage::

    from prxs_mesh.cache import TTLCache
    from prxs_mesh.registry import RegistryClient

    registry = RegistryClient("http://registry.example:8080", cache=TTLCache(10))
    services = await registry.get_services()
    svc = await registry.resolve_service("mathoracle")
    bootstrap = await registry.resolve_bootstrap()
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any
from urllib.parse import urlsplit

import httpx

from prxs_mesh.cache import TTLCache
from prxs_mesh.exceptions import (
    BootstrapError,
    PrxsError,
    RegistryError,
    ServiceNotFoundError,
)
from prxs_mesh.options import DEFAULT_REGISTRY_URL
from prxs_mesh.transport import get_json
from prxs_mesh.types import RegistryInfo, ServiceDescriptor, non_empty_str

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
_API_PREFIX_RE = re.compile(r"/api/v1(?:/|$)")

_LOCAL_HOSTNAMES = frozenset({"localhost", "127.0.0.1", "::1"})
_LOOPBACK_MULTIADDR_MARKERS = (
    "/ip4/127.0.0.1/",
    "/ip4/localhost/",
    "/ip6/::1/",
    "/dns4/localhost/",
    "/dns6/localhost/",
)

_INFO_KEY = "registry_info"
_SERVICES_KEY = "services"


def ensure_api_base_url(url: str) -> str:
    """Canonicalize *url* to the registry's ``/api/v1`` base.

    Accepts a bare host (``registry:8080``), a base URL, the API base, or a
    full endpoint such as ``.../api/v1/services``.
    """
    trimmed = url.strip().rstrip("/")
    if "://" not in trimmed:
        trimmed = f"http://{trimmed}"
    match = _API_PREFIX_RE.search(trimmed)
    if match:
        return trimmed[:match.start() + len(API_PREFIX)]
    return f"{trimmed}{API_PREFIX}"


def is_local_registry_url(url: str) -> bool:
    """Whether *url* points at this machine (``localhost`` or loopback)."""
    raw = url.strip()
    if not raw:
        return False
    if "://" not in raw:
        raw = f"http://{raw}"
    try:
        hostname = urlsplit(raw).hostname
    except ValueError:
        return False
    return (hostname or "").lower() in _LOCAL_HOSTNAMES


def is_loopback_multiaddr(addr: str) -> bool:
    return any(marker in addr for marker in _LOOPBACK_MULTIADDR_MARKERS)


class RegistryClient:
    """Client for the PRXS service registry.

    Parameters
    ----------
    registry_url:
        Registry location; normalized with :func:`ensure_api_base_url`.
    cache:
        Shared cache for registry info and the service map. A private
        10-second cache is created when omitted.
    bootstrap_override:
        Explicit bootstrap multiaddr that short-circuits resolution.
    http_client:
        Optional shared :class:`httpx.AsyncClient`.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY_URL,
        *,
        cache: TTLCache | None = None,
        bootstrap_override: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 8.0,
    ) -> None:
        self._registry_url = registry_url
        self._base_url = ensure_api_base_url(registry_url)
        self._cache = cache if cache is not None else TTLCache(10)
        self._bootstrap_override = bootstrap_override
        self._http = http_client
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def registry_url(self) -> str:
        return self._registry_url

    @property
    def cache(self) -> TTLCache:
        return self._cache

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await get_json(
            f"{self._base_url}/{path}",
            params=params,
            client=self._http,
            timeout=self._timeout,
        )

    # -- Registry info -------------------------------------------------------

    async def get_registry_info(self) -> RegistryInfo:
        """Return registry info, fetching ``/registry/info`` on a cache miss."""
        cached = self._cache.get(_INFO_KEY)
        if cached is not None:
            return cached

        data = await self._get("registry/info")
        if not isinstance(data, Mapping):
            raise RegistryError(f"Invalid response from {self._base_url}/registry/info: expected an object")
        return self._cache.put(_INFO_KEY, RegistryInfo.from_dict(data))

    # -- Services ------------------------------------------------------------

    async def _fetch_services_raw(self) -> tuple[str, Mapping[str, Any]]:
        last_error: PrxsError | None = None
        for path in ("services_full", "services"):
            url = f"{self._base_url}/{path}"
            try:
                data = await self._get(path)
                services = data.get("services") if isinstance(data, Mapping) else None
                if not isinstance(services, Mapping):
                    raise RegistryError(f"Invalid response from {url}: missing 'services' object")
            except PrxsError as exc:
                last_error = exc
                if path == "services_full":
                    logger.warning("Failed to fetch %s; falling back to /services: %s", url, exc)
                continue
            return path, services

        raise RegistryError(
            f"Failed to fetch services from registry: {last_error}"
        ) from last_error

    async def get_services(self) -> Mapping[str, ServiceDescriptor]:
        """Return the service map keyed by registry name.

        Prefers ``/services_full`` (rich cards) and falls back to the basic
        ``/services`` listing, whose cards carry no inputs or pricing.
        """
        cached = self._cache.get(_SERVICES_KEY)
        if cached is not None:
            return cached

        path, raw = await self._fetch_services_raw()
        if path == "services":
            logger.warning(
                "Using %s/services fallback (no service card data); "
                "service inputs may be empty, prefer /services_full",
                self._base_url,
            )

        services = {
            str(name): ServiceDescriptor.from_entry(str(name), entry)
            for name, entry in raw.items()
        }
        logger.debug("Loaded %d services from %s/%s", len(services), self._base_url, path)
        return self._cache.put(_SERVICES_KEY, MappingProxyType(services))

    async def resolve_service(self, name: str) -> ServiceDescriptor:
        """Look up a service by name, case-insensitively.

        The registry key wins over the card's own ``name`` field.

        Raises :class:`ServiceNotFoundError` if nothing matches.
        """
        services = await self.get_services()
        if name in services:
            return services[name]
        target = name.lower()
        for key, svc in services.items():
            if key.lower() == target:
                return svc
            if svc.card.name.lower() == target:
                return svc
        raise ServiceNotFoundError(f"Service {name!r} not found in registry")

    async def search_services(self, query: str) -> dict[str, Any]:
        """Name search via ``/services/search``."""
        return await self._search("services/search", {"q": query})

    async def semantic_search(self, query: str, k: int = 5) -> dict[str, Any]:
        """Semantic search via ``/services/semantic_search``."""
        return await self._search("services/semantic_search", {"q": query, "k": k})

    async def _search(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        data = await self._get(path, params)
        if not isinstance(data, Mapping):
            raise RegistryError(f"Invalid response from {self._base_url}/{path}: expected an object")
        return dict(data)

    # -- Bootstrap -----------------------------------------------------------

    def _registry_is_local(self) -> bool:
        return is_local_registry_url(self._registry_url) or is_local_registry_url(self._base_url)

    async def resolve_bootstrap(self) -> str:
        """Pick the bootstrap multiaddr the node binary should dial.

        An explicit override always wins. Otherwise candidates come from
        registry info (``bootstraps``, then legacy ``bootstrap``, then
        ``multiaddrs``). Registries behind NAT often advertise a loopback
        address next to the real one, so for a remote registry the first
        non-loopback candidate is preferred; for a local registry the first
        loopback one is. Failing both, the first candidate is used.

        Raises :class:`BootstrapError` when there is no candidate at all.
        """
        override = non_empty_str(self._bootstrap_override)
        if override:
            return override

        info = await self.get_registry_info()
        candidates = info.candidates()

        if not self._registry_is_local():
            for addr in candidates:
                if not is_loopback_multiaddr(addr):
                    return addr

        for addr in candidates:
            if is_loopback_multiaddr(addr):
                return addr

        if candidates:
            return candidates[0]

        raise BootstrapError(
            "Unable to resolve bootstrap multiaddr (set bootstrapMultiaddr in plugin config)"
        )

    def __repr__(self) -> str:
        return f"RegistryClient(base_url={self._base_url!r})"
