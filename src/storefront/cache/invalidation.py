"""Cache invalidation after catalog writes.

A write can change the membership or ordering of every cached list page of
its collection, so the whole ``{collection}:*`` family is swept rather than
individual pages. Single-entity keys are deleted exactly, and so are the
detail keys of parent entities whose views embed the written child.

Invalidation runs only after the write has committed. Failures are logged
and swallowed: a stale entry expires through its TTL, while a failed
request would lose a committed write's response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from storefront.cache.keys import CacheKeys, EntityType
from storefront.cache.store import CacheStore

logger = logging.getLogger(__name__)

# Families whose cached rows embed data of another entity type
DEPENDENT_FAMILIES: dict[EntityType, tuple[EntityType, ...]] = {
    EntityType.CATEGORY: (EntityType.PRODUCT,),
}


@dataclass(frozen=True)
class ParentRef:
    """A parent entity whose cached detail view embeds the written entity."""

    entity_type: EntityType
    entity_id: int


@dataclass
class InvalidationPlan:
    """Keys and patterns to clear for one write."""

    keys: list[str] = field(default_factory=list)
    patterns: list[str] = field(default_factory=list)


@dataclass
class InvalidationResult:
    deleted: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class InvalidationRouter:
    """Clears cache entries affected by a write.

    Example:
        router = InvalidationRouter(store)
        await router.on_write(
            EntityType.PRODUCT, 42, [ParentRef(EntityType.CATEGORY, 3)]
        )
        # deletes product:42 and category:3, sweeps products:*
    """

    def __init__(self, store: CacheStore):
        self.store = store

    def plan(
        self,
        entity_type: EntityType,
        entity_id: int | None,
        parent_refs: Iterable[ParentRef] = (),
        created: bool = False,
    ) -> InvalidationPlan:
        plan = InvalidationPlan()
        if entity_id is not None and not created:
            plan.keys.append(CacheKeys.entity(entity_type, entity_id))
        for parent in parent_refs:
            plan.keys.append(CacheKeys.entity(parent.entity_type, parent.entity_id))

        plan.patterns.append(CacheKeys.collection_pattern(entity_type))
        # A new row cannot be embedded in any existing dependent entry
        if not created:
            for dependent in DEPENDENT_FAMILIES.get(entity_type, ()):
                plan.patterns.append(CacheKeys.collection_pattern(dependent))
                plan.patterns.append(CacheKeys.entity_pattern(dependent))
        return plan

    async def on_write(
        self,
        entity_type: EntityType,
        entity_id: int | None,
        parent_refs: Iterable[ParentRef] = (),
        created: bool = False,
    ) -> InvalidationResult:
        """Invalidate everything a committed write may have made stale.

        Args:
            entity_type: Type of the written entity
            entity_id: Id of the written entity
            parent_refs: Parents whose detail views embed the entity
            created: The write was an insert; no existing single-entity or
                dependent entry can reference the new row
        """
        plan = self.plan(entity_type, entity_id, parent_refs, created=created)
        result = InvalidationResult()

        if not self.store.available:
            if self.store.client is not None:
                logger.warning(
                    f"Cache unavailable, skipped invalidation of {plan.keys + plan.patterns}"
                )
            return result

        if plan.keys:
            outcome = await self.store.delete(*plan.keys)
            if outcome.error is not None:
                result.failures.append(outcome.error.key)
            else:
                result.deleted += outcome.count

        for pattern in plan.patterns:
            outcome = await self.store.sweep(pattern)
            if outcome.error is not None:
                result.failures.append(pattern)
            else:
                result.deleted += outcome.count

        if result.failures:
            logger.error(
                f"Cache invalidation failed for {result.failures}; entries expire by TTL"
            )
        else:
            logger.debug(f"Invalidated {result.deleted} cache entries for {entity_type.value}:{entity_id}")
        return result

    # Name used by request handlers
    invalidate = on_write
