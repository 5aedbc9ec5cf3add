from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from talentsift.config import get_settings

TERMINAL_STATES = {"completed", "failed"}


@dataclass(slots=True)
class RunTicket:
    ticket_id: str
    job_ref: str
    parsing_mode: str
    retry_failed_only: bool = False
    state: str = "pending"
    result: dict[str, Any] | None = None
    error: str = ""
    error_code: str = ""
    existing_processing_job_id: int | None = None
    created_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "job_ref": self.job_ref,
            "parsing_mode": self.parsing_mode,
            "retry_failed_only": self.retry_failed_only,
            "state": self.state,
            "result": self.result,
            "error": self.error,
            "error_code": self.error_code,
            "existing_processing_job_id": self.existing_processing_job_id,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
        }


class RunRegistry:
    """Process-wide record of background ingestion requests.

    Tickets move ``pending -> running -> completed|failed``. Finished tickets
    are dropped once they are older than ``ttl_sec``; collection runs on every
    registry access.
    """

    def __init__(self, ttl_sec: float, clock: Callable[[], float] = time.time) -> None:
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._tickets: dict[str, RunTicket] = {}
        self._lock = threading.Lock()

    def create(self, *, job_ref: str, parsing_mode: str, retry_failed_only: bool = False) -> RunTicket:
        ticket = RunTicket(
            ticket_id=uuid.uuid4().hex,
            job_ref=job_ref,
            parsing_mode=parsing_mode,
            retry_failed_only=retry_failed_only,
            created_at=self._clock(),
        )
        with self._lock:
            self._collect_locked()
            self._tickets[ticket.ticket_id] = ticket
        return ticket

    def get(self, ticket_id: str) -> RunTicket | None:
        with self._lock:
            self._collect_locked()
            return self._tickets.get(ticket_id)

    def mark_running(self, ticket_id: str) -> None:
        self._transition(ticket_id, "running", allowed_from={"pending"})

    def mark_completed(self, ticket_id: str, result: dict[str, Any]) -> None:
        self._transition(ticket_id, "completed", allowed_from={"running"}, result=result)

    def mark_failed(
        self,
        ticket_id: str,
        error: str,
        error_code: str = "",
        *,
        existing_processing_job_id: int | None = None,
    ) -> None:
        self._transition(
            ticket_id,
            "failed",
            allowed_from={"pending", "running"},
            error=error,
            error_code=error_code,
            existing_processing_job_id=existing_processing_job_id,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._tickets)

    def _transition(self, ticket_id: str, state: str, *, allowed_from: set[str], **changes: Any) -> None:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                raise ValueError(f"ticket {ticket_id} not found")
            if ticket.state not in allowed_from:
                raise ValueError(f"ticket {ticket_id} cannot move from {ticket.state} to {state}")
            ticket.state = state
            for key, value in changes.items():
                setattr(ticket, key, value)
            if state in TERMINAL_STATES:
                ticket.finished_at = self._clock()

    def _collect_locked(self) -> None:
        cutoff = self._clock() - self.ttl_sec
        expired = [
            ticket_id
            for ticket_id, ticket in self._tickets.items()
            if ticket.state in TERMINAL_STATES and ticket.finished_at is not None and ticket.finished_at < cutoff
        ]
        for ticket_id in expired:
            del self._tickets[ticket_id]


_RUN_REGISTRY: RunRegistry | None = None


def get_run_registry() -> RunRegistry:
    global _RUN_REGISTRY
    if _RUN_REGISTRY is None:
        _RUN_REGISTRY = RunRegistry(ttl_sec=get_settings().run_registry_ttl_sec)
    return _RUN_REGISTRY
