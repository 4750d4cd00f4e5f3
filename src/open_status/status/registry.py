"""
SiteRegistry: the in-memory cache of a session's sites.

The registry owns the sites, not the behavior. Every site has its own
asyncio.Lock; decisions and writes for a site happen while holding it.
"""

import asyncio
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from open_status.core.errors import InvalidArgument

from .models import Site

logger = logging.getLogger(__name__)


class SiteRegistry:
    """
    Holds the sites owned by one monitoring session.

    Responsibilities:
    - Store the current Site value per site id
    - Hand out the per-site lock that serializes evaluation and commits
    - Provide immutable snapshots for observers

    Does NOT decide status or talk to the record store.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._sites: Dict[str, Site] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def register(self, site: Site) -> Site:
        """
        Add a site to the registry.

        Raises:
            InvalidArgument: If a site with the same id is already registered
        """
        if site.id in self._sites:
            raise InvalidArgument(f"Site with id '{site.id}' already registered")

        self._sites[site.id] = site
        self._locks.setdefault(site.id, asyncio.Lock())
        logger.info(f"Registered site: {site.id} ({site.name or 'unnamed'})")
        return site

    def deregister(self, site_id: str) -> Optional[Site]:
        """
        Remove a site from the registry.

        The lock object is left in place so a task already waiting on it
        wakes up, finds the site gone and bails out.

        Returns:
            The removed Site, or None if it was not registered
        """
        site = self._sites.pop(site_id, None)
        if site:
            logger.info(f"Deregistered site: {site_id}")
        return site

    def get(self, site_id: str) -> Optional[Site]:
        """Get a site by ID."""
        return self._sites.get(site_id)

    def require(self, site_id: str) -> Site:
        """
        Get a site by ID, failing loudly.

        Raises:
            InvalidArgument: If the site is not registered
        """
        site = self._sites.get(site_id)
        if site is None:
            raise InvalidArgument(f"Unknown site: '{site_id}'")
        return site

    def replace(self, site: Site) -> None:
        """
        Store a newer value for an already registered site.

        Callers must hold the site's lock. Replacing a site that has been
        deregistered meanwhile is ignored.
        """
        if site.id not in self._sites:
            logger.debug(f"Ignoring update for deregistered site {site.id}")
            return
        self._sites[site.id] = site

    def lock(self, site_id: str) -> asyncio.Lock:
        """
        Get the lock guarding a site.

        Raises:
            InvalidArgument: If the site has never been registered
        """
        try:
            return self._locks[site_id]
        except KeyError:
            raise InvalidArgument(f"Unknown site: '{site_id}'") from None

    def site_ids(self) -> List[str]:
        return list(self._sites)

    def snapshot(self) -> Tuple[Site, ...]:
        """Immutable view of all sites (Site values are frozen)."""
        return tuple(self._sites.values())

    def clear(self) -> None:
        """Discard every site and lock."""
        self._sites.clear()
        self._locks.clear()
        logger.debug("Registry cleared")

    def __contains__(self, site_id: object) -> bool:
        return site_id in self._sites

    def __len__(self) -> int:
        return len(self._sites)

    def __iter__(self) -> Iterator[Site]:
        return iter(list(self._sites.values()))
