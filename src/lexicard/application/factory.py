"""
Card Store Factory
Centralizes the logic for selecting and preparing the card store adapter.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from lexicard.application.config import AppConfig
from lexicard.application.due_state import DueStateCache
from lexicard.application.lifecycle import CardLifecycleManager, local_now
from lexicard.application.migration import MigrationReport, ensure_schema
from lexicard.application.queue_builder import ReviewQueueBuilder
from lexicard.domain.ports import CardStore
from lexicard.infrastructure.adapters.memory_store import InMemoryCardStore
from lexicard.infrastructure.adapters.sqlite_store import SqliteCardStore


def get_card_store(config: AppConfig) -> CardStore:
    """
    Returns the CardStore implementation selected by config.
    """
    if config.backend == "memory":
        return InMemoryCardStore()
    return SqliteCardStore(config.db_path).open()


async def open_card_store(
    config: AppConfig, clock: Callable[[], datetime] = local_now
) -> tuple[CardStore, MigrationReport]:
    """
    Open the configured store and bring its schema up to date.

    Migration runs together with the version bump, before any caller reads cards.
    """
    store = get_card_store(config)
    report = await ensure_schema(store, clock())
    return store, report


@dataclass
class Services:
    """The wired services a CLI command or API request works with."""

    store: CardStore
    lifecycle: CardLifecycleManager
    queue: ReviewQueueBuilder
    migration: MigrationReport


async def build_services(
    config: AppConfig, clock: Callable[[], datetime] = local_now
) -> Services:
    store, report = await open_card_store(config, clock)
    cache = DueStateCache()
    rng = random.Random(config.shuffle_seed) if config.shuffle_seed is not None else None
    return Services(
        store=store,
        lifecycle=CardLifecycleManager(store, clock=clock, cache=cache),
        queue=ReviewQueueBuilder(store, clock=clock, rng=rng, cache=cache),
        migration=report,
    )
