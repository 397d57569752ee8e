from __future__ import annotations

from typing import TYPE_CHECKING

from . import utils as store_utils
from .types import Observation

if TYPE_CHECKING:
    from ._store import MemoryStore


def timeline(
    store: MemoryStore,
    observation_id: int,
    before: int = 3,
    after: int = 3,
) -> list[Observation]:
    """Observations around an id in ascending id order.

    The anchor row is included only when it still exists; a short window on
    either side is returned as-is. One statement, so one read snapshot.
    """

    anchor_id = store_utils.parse_id(observation_id)
    depth_before = store_utils.parse_count(before, name="before")
    depth_after = store_utils.parse_count(after, name="after")
    rows = store.conn.execute(
        """
        SELECT * FROM (
            SELECT * FROM (
                SELECT * FROM observations WHERE id < ? ORDER BY id DESC LIMIT ?
            )
            UNION ALL
            SELECT * FROM observations WHERE id = ?
            UNION ALL
            SELECT * FROM (
                SELECT * FROM observations WHERE id > ? ORDER BY id ASC LIMIT ?
            )
        )
        ORDER BY id ASC
        """,
        (anchor_id, depth_before, anchor_id, anchor_id, depth_after),
    ).fetchall()
    return [store_utils.row_to_observation(row) for row in rows]
