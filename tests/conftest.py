"""Shared fixtures."""

import pytest

from fullkoll.notify.transport import LoggingTransport
from fullkoll.utils.errors import TransportError


class RecordingTransport(LoggingTransport):
    """Logging transport that remembers every call it receives."""

    def __init__(self, fail_for: set[str] | None = None):
        super().__init__()
        self.fail_for = fail_for or set()
        self.schedule_calls: list[dict] = []
        self.cancel_calls: list[str] = []

    async def schedule(self, user_id, fire_at, title, body, metadata) -> str:
        if user_id in self.fail_for:
            raise TransportError(f"push service rejected {user_id}")
        self.schedule_calls.append(
            {
                "user_id": user_id,
                "fire_at": fire_at,
                "title": title,
                "body": body,
                "metadata": metadata,
            }
        )
        return await super().schedule(user_id, fire_at, title, body, metadata)

    async def cancel(self, job_ref: str) -> None:
        self.cancel_calls.append(job_ref)
        await super().cancel(job_ref)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> RecordingTransport:
    """Rejects every reminder for the owner "unreachable"."""
    return RecordingTransport(fail_for={"unreachable"})
