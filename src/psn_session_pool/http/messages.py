"""Multipart bodies for the group-messaging endpoints.

PSN expects each JSON document as its own ``application/json`` form part and
an attached image as an ``image/png`` part.  The parts are returned in the
``files=`` format httpx accepts; httpx generates the boundary and framing.
"""

from __future__ import annotations

import json
from typing import Any

JSON_PART = "application/json; charset=utf-8"

TEXT_EVENT = 1
IMAGE_EVENT = 3


def new_thread_parts(recipient_online_id: str, sender_online_id: str) -> list[tuple[str, Any]]:
    detail = {
        "threadDetail": {
            "threadMembers": [
                {"onlineId": recipient_online_id},
                {"onlineId": sender_online_id},
            ]
        }
    }
    return [("threadDetail", (None, json.dumps(detail), JSON_PART))]


def message_parts(text: str | None, image: bytes | None) -> list[tuple[str, Any]]:
    if text is None and image is None:
        raise ValueError("A message needs text, an image, or both")
    event = {
        "messageEventDetail": {
            "eventCategoryCode": IMAGE_EVENT if image is not None else TEXT_EVENT,
            "messageDetail": {"body": text or ""},
        }
    }
    parts: list[tuple[str, Any]] = [("messageEventDetail", (None, json.dumps(event), JSON_PART))]
    if image is not None:
        parts.append(("imageData", ("image.png", image, "image/png")))
    return parts
