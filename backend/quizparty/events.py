from __future__ import annotations

from typing import Any, List

from pymongo import ReturnDocument

from .db import db
from .utils import now_ts


class EventStore:
    """Per-session feed of the game events the UI replays.

    Every event gets the next number from the session's counter document;
    the UI polls ``/api/session/{id}/events?after=<seq>`` and applies what
    it has not seen yet.
    """

    counters_collection = db.session_event_counters
    events_collection = db.session_events

    async def append(self, session_id: str, payload: dict[str, Any]) -> int:
        """Record ``payload`` and return its sequence number."""
        counter_doc = await self.counters_collection.find_one_and_update(
            {"_id": session_id},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        seq = int(counter_doc["seq"])

        await self.events_collection.insert_one(
            {
                "session_id": session_id,
                "seq": seq,
                "timestamp": now_ts(),
                "payload": payload,
            }
        )
        return seq

    async def list(self, session_id: str, after: int | None = None, limit: int = 200) -> List[dict[str, Any]]:
        """Events newer than ``after``, oldest first, at most ``limit`` of them."""
        query: dict[str, Any] = {"session_id": session_id}
        if after is not None:
            query["seq"] = {"$gt": after}

        docs = await self.events_collection.find(query, sort=("seq", 1), limit=limit)
        return [
            {
                "seq": doc["seq"],
                "timestamp": doc.get("timestamp"),
                "payload": doc.get("payload", {}),
            }
            for doc in docs
        ]

    async def reset(self, session_id: str) -> None:
        """Drop a session's history on restart, leaving a ``session_reset`` marker."""
        await self.events_collection.delete_many({"session_id": session_id})

        # Sequence numbers keep increasing across resets so pollers holding an
        # old ``after`` cursor still see the marker.
        await self.append(session_id, {"type": "session_reset"})


event_store = EventStore()
