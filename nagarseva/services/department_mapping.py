"""Department mapping resolver: (category, city) -> owning department.

Every complaint must end up with *some* actionable department, so
resolution is total.  The mapping table (``civic_issues``) is consulted in
three tiers, first hit wins:

1. **Exact**: rows with ``category == c AND city == x``.
2. **Category-only**: rows with ``category == c`` in any city.  The result's
   ``matched_criteria.city`` is the *matched row's* city, not the
   complaint's.
3. **Default**: the configured default department with
   ``is_default=True``.  Lookup errors, timeouts and malformed input land
   here too; nothing is raised to the caller.

Each store query is bounded by a timeout and a small number of tenacity
retries.  The same class serves both deployments (operations store and the
citizen-side read store) so their behaviour cannot drift apart.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.policy import DEFAULT_POLICY, EnrichmentPolicy
from nagarseva.errors import MappingLookupError
from nagarseva.models.complaint import UNKNOWN, Complaint, generate_complaint_id
from nagarseva.models.enums import MappingStatus
from nagarseva.models.mapping import DepartmentMapping, DepartmentMappingResult, MatchedCriteria
from nagarseva.services.cache import MappingCache
from nagarseva.store.base import Document, DocumentStore, FieldFilter

logger = structlog.get_logger(__name__)

# A Complaint, a {"category", "city", "complaint_id"} mapping, or any object
# exposing those attributes.
MappingQuery = Any


def _criteria(item: MappingQuery) -> tuple[Any, Any]:
    """Pull the raw (category, city) pair out of a complaint-like object."""
    if isinstance(item, Complaint):
        return item.effective_category, item.effective_city
    if isinstance(item, Mapping):
        return item.get("category"), item.get("city")
    return getattr(item, "category", None), getattr(item, "city", None)


def _item_id(item: MappingQuery) -> str | None:
    if isinstance(item, Complaint):
        return item.complaint_id
    if isinstance(item, Mapping):
        value = item.get("complaint_id") or item.get("complaintId")
    else:
        value = getattr(item, "complaint_id", None)
    return str(value) if value else None


def _echo(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return UNKNOWN


class DepartmentMappingResolver:
    """Resolves complaints to departments against one mapping store.

    Parameters
    ----------
    store:
        Document store holding the mapping collection.
    collection:
        Name of the mapping collection.
    policy:
        Supplies the default department and escalation authority.
    cache:
        Optional :class:`MappingCache`; only successful lookups are cached.
    timeout_seconds / attempts:
        Per-query timeout and total attempts before degrading to default.
    name:
        Deployment label included in log events (``"operations"``, ``"citizen"``).
    """

    __slots__ = ("_attempts", "_cache", "_collection", "_name", "_policy", "_store", "_timeout")

    def __init__(
        self,
        store: DocumentStore,
        *,
        collection: str = "civic_issues",
        policy: EnrichmentPolicy = DEFAULT_POLICY,
        cache: MappingCache | None = None,
        timeout_seconds: float = 5.0,
        attempts: int = 2,
        name: str = "operations",
    ) -> None:
        self._store = store
        self._collection = collection
        self._policy = policy
        self._cache = cache
        self._timeout = timeout_seconds
        self._attempts = max(1, attempts)
        self._name = name

    @property
    def policy(self) -> EnrichmentPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _query(self, filters: Sequence[FieldFilter], limit: int | None) -> list[Document]:
        """Run one mapping query with timeout and bounded retries."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._attempts),
                wait=wait_exponential(multiplier=0.1, max=1.0),
                retry=retry_if_exception_type(Exception),
                reraise=True,
            ):
                with attempt:
                    return await asyncio.wait_for(
                        self._store.query(self._collection, filters=filters, limit=limit),
                        timeout=self._timeout,
                    )
        except Exception as exc:
            raise MappingLookupError(f"Mapping lookup on {self._collection!r} failed: {exc!r}") from exc
        return []  # pragma: no cover

    def _result_from_row(self, doc: Document, category: str, matched_city: str) -> DepartmentMappingResult:
        data = doc.data
        department = str(data.get("department") or "").strip()
        if not department:
            raise MappingLookupError(f"Mapping row {doc.id!r} has no department")
        return DepartmentMappingResult(
            department=department,
            higher_authority=str(data.get("higher_authority") or self._policy.default_authority(department)),
            status=str(data.get("status") or MappingStatus.ACTIVE),
            is_default=False,
            matched_criteria=MatchedCriteria(category=category, city=matched_city),
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def default_result(self, category: Any, city: Any) -> DepartmentMappingResult:
        """The sentinel returned when nothing matches; criteria echo the input."""
        department = self._policy.default_department
        return DepartmentMappingResult(
            department=department,
            higher_authority=self._policy.default_authority(department),
            status=MappingStatus.ACTIVE,
            is_default=True,
            matched_criteria=MatchedCriteria(category=_echo(category), city=_echo(city)),
        )

    async def _resolve_uncached(self, category: str, city: str) -> DepartmentMappingResult:
        exact = await self._query(
            [FieldFilter("category", "==", category), FieldFilter("city", "==", city)],
            limit=1,
        )
        if exact:
            result = self._result_from_row(exact[0], category, city)
            logger.debug(
                "resolver.exact_match",
                resolver=self._name,
                category=category,
                city=city,
                department=result.department,
            )
            return result

        by_category = await self._query([FieldFilter("category", "==", category)], limit=1)
        if by_category:
            row_city = _echo(by_category[0].data.get("city"))
            result = self._result_from_row(by_category[0], category, row_city)
            logger.info(
                "resolver.category_match",
                resolver=self._name,
                category=category,
                requested_city=city,
                matched_city=row_city,
                department=result.department,
            )
            return result

        logger.info("resolver.no_match", resolver=self._name, category=category, city=city)
        return self.default_result(category, city)

    async def resolve(self, item: MappingQuery) -> DepartmentMappingResult:
        """Resolve one complaint (or ``{"category", "city"}`` mapping).  Never raises."""
        category: Any = None
        city: Any = None
        try:
            category, city = _criteria(item)
            if not isinstance(category, str) or not category.strip():
                raise MappingLookupError("complaint has no category")
            if not isinstance(city, str) or not city.strip():
                city = UNKNOWN

            if self._cache is not None:
                cached = await self._cache.get(category, city)
                if cached is not None:
                    return cached

            result = await self._resolve_uncached(category, city)
            if self._cache is not None:
                await self._cache.set(category, city, result)
            return result
        except Exception:
            logger.warning(
                "resolver.lookup_failed_using_default",
                resolver=self._name,
                category=category,
                city=city,
                exc_info=True,
            )
            return self.default_result(category, city)

    async def resolve_many(self, items: Iterable[MappingQuery]) -> dict[str, DepartmentMappingResult]:
        """Resolve *items* concurrently; one failure never affects the others.

        Returns a mapping of complaint id to result.  Items without an id are
        keyed by a generated complaint id.
        """
        items = list(items)
        keys: list[str] = []
        for item in items:
            key = _item_id(item)
            if key is None:
                category, city = _criteria(item)
                key = generate_complaint_id(_echo(category), _echo(city))
            keys.append(key)

        outcomes = await asyncio.gather(*(self.resolve(item) for item in items), return_exceptions=True)

        results: dict[str, DepartmentMappingResult] = {}
        for key, item, outcome in zip(keys, items, outcomes):
            if isinstance(outcome, DepartmentMappingResult):
                results[key] = outcome
            else:
                category, city = _criteria(item)
                results[key] = self.default_result(category, city)
        logger.info("resolver.batch_resolved", resolver=self._name, count=len(results))
        return results

    # ------------------------------------------------------------------
    # Table inspection
    # ------------------------------------------------------------------

    async def departments_by_city(self, city: str, *, limit: int = 50) -> list[DepartmentMapping]:
        """All mapping rows for *city*; empty on store failure."""
        try:
            docs = await self._query([FieldFilter("city", "==", city)], limit=limit)
        except MappingLookupError:
            logger.warning("resolver.departments_by_city_failed", resolver=self._name, city=city, exc_info=True)
            return []
        rows: list[DepartmentMapping] = []
        for doc in docs:
            try:
                rows.append(DepartmentMapping.model_validate({**doc.data, "mapping_id": doc.id}))
            except ValueError:
                logger.warning("resolver.malformed_mapping_row", resolver=self._name, mapping_id=doc.id)
        return rows

    async def _distinct(self, field: str) -> list[str]:
        try:
            docs = await self._query([], limit=None)
        except MappingLookupError:
            logger.warning("resolver.distinct_failed", resolver=self._name, field=field, exc_info=True)
            return []
        return sorted({str(doc.data[field]) for doc in docs if doc.data.get(field)})

    async def available_categories(self) -> list[str]:
        return await self._distinct("category")

    async def available_cities(self) -> list[str]:
        return await self._distinct("city")
