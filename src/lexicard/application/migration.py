"""
Schema migrations for card stores.

Each step upgrades the store to one schema version. Steps must be
idempotent: ids are deterministic, so re-running a step finds its records
already present and leaves them (and any review progress) alone.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from lexicard.domain.constants import SCHEMA_VERSION
from lexicard.domain.legacy import MalformedLegacyRecord, card_from_legacy
from lexicard.domain.ports import CardStore

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    from_version: int
    to_version: int
    migrated: int = 0
    skipped: int = 0
    existing: int = 0
    steps: list[int] = field(default_factory=list)


MigrationStep = Callable[[CardStore, datetime, MigrationReport], Awaitable[None]]


async def _scope_legacy_cards(store: CardStore, now: datetime, report: MigrationReport) -> None:
    """v4: copy unscoped legacy records into scoped cards. The legacy table is left as is."""
    for record in await store.get_legacy_records():
        try:
            card = card_from_legacy(record, now)
        except (MalformedLegacyRecord, TypeError, ValueError) as e:
            logger.warning(f"Skipping legacy record: {e}")
            report.skipped += 1
            continue
        if await store.get(card.id) is not None:
            # Already migrated; keep any progress made since
            report.existing += 1
            continue
        await store.upsert(card)
        report.migrated += 1


MIGRATIONS: dict[int, MigrationStep] = {
    4: _scope_legacy_cards,
}


async def migrate(
    store: CardStore,
    old_version: int,
    new_version: int,
    now: datetime,
) -> MigrationReport:
    """
    Run every registered step in (old_version, new_version].

    Does not touch the stored schema version; see ensure_schema.
    """
    report = MigrationReport(from_version=old_version, to_version=new_version)
    for version in range(old_version + 1, new_version + 1):
        step = MIGRATIONS.get(version)
        if step is None:
            continue
        logger.info(f"Applying card store migration v{version}")
        await step(store, now, report)
        report.steps.append(version)

    if report.skipped:
        logger.warning(f"Migration skipped {report.skipped} malformed legacy record(s)")
    return report


async def ensure_schema(
    store: CardStore,
    now: datetime,
    target_version: int = SCHEMA_VERSION,
) -> MigrationReport:
    """
    Bring the store up to `target_version`, bumping the version after the steps succeed.

    A store already at (or past) the target is left untouched.
    """
    current = await store.get_schema_version()
    if current >= target_version:
        return MigrationReport(from_version=current, to_version=current)

    report = await migrate(store, current, target_version, now)
    await store.set_schema_version(target_version)
    logger.info(
        f"Card store upgraded v{current} -> v{target_version}: "
        f"{report.migrated} migrated, {report.skipped} skipped"
    )
    return report
