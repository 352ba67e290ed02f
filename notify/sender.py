"""
notify/sender.py -- Notification dispatch interface and fan-out.

A Sender delivers one templated message per recipient in a batch. Each
recipient is a flat str -> str mapping built by build_notification_data():

    {
        "baseURL": "https://app.example.com",
        "userID":  "6f1c...",
        "email":   "jane@example.com",
        "phone":   "+351...",
        "firstName": "Jane",   # anything from User.meta
        "code":    "<token>",  # call-specific extras, merged last
    }

send_bulk() runs every configured sender concurrently. One sender failing
never stops or cancels the others; all failures come back as a list for the
caller to aggregate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Protocol

from auth.models import User

logger = logging.getLogger("passgate.notify")


class Template(str, Enum):
    """Which message to render."""

    SIGN_UP = "sign_up"
    RESET_PASSWORD = "reset_password"


class Sender(Protocol):
    async def send_bulk(self, template: Template, batch: list[dict[str, str]]) -> None:
        """Deliver template to every recipient in batch.

        Must try every recipient even when some fail, then raise a single
        error describing the failures.
        """
        ...


def build_notification_data(
    base_url: str,
    users: Iterable[User],
    extra: Mapping[str, str] | None = None,
) -> list[dict[str, str]]:
    """Build one template-data dict per user.

    Precedence, lowest to highest: the standard keys, the user's meta, extra.
    """
    data = []
    for user in users:
        single = {
            "baseURL": base_url,
            "userID": str(user.id),
            "email": user.email,
            "phone": user.phone_number,
        }
        single.update(user.meta or {})
        single.update(extra or {})
        data.append(single)
    return data


async def send_bulk(
    senders: Sequence[Sender],
    template: Template,
    batch: list[dict[str, str]],
) -> list[Exception]:
    """Run every sender on batch and return the errors they raised."""
    if not senders:
        return []

    results = await asyncio.gather(
        *(sender.send_bulk(template, batch) for sender in senders),
        return_exceptions=True,
    )

    errors: list[Exception] = []
    for sender, result in zip(senders, results):
        if isinstance(result, Exception):
            logger.warning("%s failed to deliver %s notification: %s", type(sender).__name__, template.value, result)
            errors.append(result)
        elif isinstance(result, BaseException):
            # CancelledError and friends are not delivery failures.
            raise result
    return errors
