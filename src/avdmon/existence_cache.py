"""Existence cache for one reconciliation run.

Builds a one-time map of "does resource X already exist" so reconciliation does
not need a show call per resource:

1. Definitions are grouped by (kind, scope). Each group gets one bulk
   list_names call with the naming prefix, bounded by a timeout.
2. A successful listing (even an empty one) is authoritative for the group:
   listed names exist, every other desired name in the group does not.
3. A listing that fails or times out leaves the group indeterminate; lookups
   for its names fall back to a live per-name exists() call.

The cache is read-only after build(); lookup() is safe to call from many
worker threads. Fallback lookups are not memoized: each one is independent.
"""

import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from types import MappingProxyType
from typing import Protocol

from avdmon.models import ResourceDefinition, ResourceKind
from avdmon.resource_client import ResourceClientError

logger = logging.getLogger(__name__)

DEFAULT_BULK_TIMEOUT = 25.0

ScopeKey = tuple[ResourceKind, str]


class ExistenceLookupClient(Protocol):
    """The part of the resource client the cache needs."""

    def list_names(
        self, kind: ResourceKind, scope: str, prefix: str, timeout: float
    ) -> list[str]: ...

    def exists(self, definition: ResourceDefinition) -> bool: ...


class ExistenceCache:
    """Read-only existence map with per-item fallback.

    Example:
        cache = ExistenceCache.build(client, definitions, prefix="avd", timeout=25)
        if cache.lookup(definition):
            ...
    """

    def __init__(
        self,
        client: ExistenceLookupClient,
        record: Mapping[str, bool | None],
        indeterminate_scopes: Iterable[ScopeKey] = (),
    ):
        self._client = client
        self._record: Mapping[str, bool | None] = MappingProxyType(dict(record))
        self._indeterminate = frozenset(indeterminate_scopes)

    @classmethod
    def build(
        cls,
        client: ExistenceLookupClient,
        definitions: Iterable[ResourceDefinition],
        prefix: str,
        timeout: float = DEFAULT_BULK_TIMEOUT,
    ) -> "ExistenceCache":
        """Run the bulk listings and build the cache.

        Args:
            client: Resource client used for listings and fallback lookups
            definitions: Desired resources
            prefix: Naming prefix shared by avdmon-managed resources
            timeout: Seconds allowed per bulk listing

        Returns:
            ExistenceCache; never raises for listing failures
        """
        groups: dict[ScopeKey, list[str]] = {}
        for definition in definitions:
            groups.setdefault((definition.kind, definition.scope), []).append(definition.name)

        record: dict[str, bool | None] = {}
        indeterminate: list[ScopeKey] = []

        for (kind, scope), names in groups.items():
            listed = _bounded_list(client, kind, scope, prefix, timeout)
            if listed is None:
                indeterminate.append((kind, scope))
                record.update(dict.fromkeys(names))
                continue

            existing = set(listed)
            for name in names:
                record[name] = name in existing
            logger.debug(
                f"{kind.value} listing for {scope or 'resource group'}: "
                f"{len(existing)} existing, {len(names)} desired"
            )

        if indeterminate:
            logger.warning(
                f"Bulk existence check unavailable for {len(indeterminate)} scope(s); "
                "falling back to per-resource lookups"
            )

        return cls(client, record, indeterminate)

    @property
    def record(self) -> Mapping[str, bool | None]:
        """Read-only name -> True/False/None (unknown) mapping."""
        return self._record

    @property
    def indeterminate_scopes(self) -> frozenset[ScopeKey]:
        """Scopes whose bulk listing failed."""
        return self._indeterminate

    def is_authoritative(self, name: str) -> bool:
        """True if the bulk listing settled this name without a fallback lookup."""
        return self._record.get(name) is not None

    def lookup(self, definition: ResourceDefinition) -> bool:
        """Return whether definition's resource exists.

        Raises:
            TransientLookupError: If the fallback lookup cannot decide
        """
        known = self._record.get(definition.name)
        if known is not None:
            return known

        logger.debug(f"Falling back to live lookup for {definition.name}")
        return self._client.exists(definition)


def _bounded_list(
    client: ExistenceLookupClient,
    kind: ResourceKind,
    scope: str,
    prefix: str,
    timeout: float,
) -> list[str] | None:
    """Run one bulk listing, returning None when it fails or overruns timeout.

    The call runs on a helper thread so a listing that ignores its own timeout
    cannot hold up the run; an overrunning call is abandoned, not waited for.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="avdmon-list")
    try:
        future = executor.submit(client.list_names, kind, scope, prefix, timeout)
        return list(future.result(timeout=timeout))
    except FutureTimeoutError:
        logger.warning(f"Bulk {kind.value} listing exceeded {timeout}s")
        return None
    except ResourceClientError as e:
        logger.warning(f"Bulk {kind.value} listing failed: {e}")
        return None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["DEFAULT_BULK_TIMEOUT", "ExistenceCache", "ExistenceLookupClient"]
