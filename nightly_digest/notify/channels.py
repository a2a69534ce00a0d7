from __future__ import annotations

from typing import Protocol

from nightly_digest.types import Report


class Channel(Protocol):
    """A notification target.

    ``send`` returns True when the endpoint accepted the message. That is
    "accepted for delivery", not a read receipt.
    """

    name: str

    @property
    def configured(self) -> bool: ...

    async def send(self, report: Report) -> bool: ...

    async def health_check(self) -> bool: ...

    async def aclose(self) -> None: ...
