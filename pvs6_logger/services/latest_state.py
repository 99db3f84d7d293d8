# pvs6_logger/services/latest_state.py

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from pvs6_logger.models.readings import SINGULAR_CATEGORIES, Inverter, Snapshot


def read_latest(store, log: Optional[logging.Logger] = None) -> Snapshot:
    """
    Build the "latest persisted" snapshot the reconciler compares against.

    Each category is read independently. A category that cannot be read, or
    has nothing stored yet, stays a sentinel so its current data is treated
    as new.
    """
    log = log or logging.getLogger("pvs6.latest_state")
    snapshot = Snapshot()

    for attr, reading_cls in SINGULAR_CATEGORIES:
        category = reading_cls.category
        try:
            rows = store.query_latest(category)
        except sqlite3.Error as exc:
            log.error("Could not read latest %s from store; treating current data as new. Err: %s", category, exc)
            continue

        if not rows:
            log.warning("No stored %s readings found (expected on first run)", category)
            continue
        if len(rows) > 1:
            log.warning(
                "Expected one latest %s row, found %d (serials: %s); using %s",
                category,
                len(rows),
                ", ".join(r.serial for r in rows),
                rows[0].serial,
            )
        setattr(snapshot, attr, rows[0])

    try:
        snapshot.inverters = store.query_latest(Inverter.category)
    except sqlite3.Error as exc:
        log.error("Could not read latest inverters from store; treating current data as new. Err: %s", exc)
    else:
        if not snapshot.inverters:
            log.warning("No stored inverter readings found (expected on first run)")
        else:
            log.debug("Latest stored state covers %d inverter(s)", len(snapshot.inverters))

    return snapshot
