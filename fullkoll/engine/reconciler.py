"""Reconcile persisted job refs against freshly computed reminder plans."""

import logging
from typing import Callable, Iterable

from fullkoll.bot.formatters import render_message
from fullkoll.engine.schedule import ReminderMessage, ReminderPlan, ScheduledReminder
from fullkoll.notify.transport import NotificationTransport

logger = logging.getLogger(__name__)


class Reconciler:
    """Issues the transport calls for one record at a time.

    Scheduling never merges with the refs a record already holds: the new set
    replaces them. Unless `cancel_superseded_refs` is on, the replaced refs
    stay scheduled at the transport and are no longer referenced by anything.
    """

    def __init__(
        self,
        transport: NotificationTransport,
        render: Callable[[ReminderMessage], tuple[str, str]] = render_message,
        cancel_superseded_refs: bool = False,
    ):
        self.transport = transport
        self.render = render
        self.cancel_superseded_refs = cancel_superseded_refs

    async def cancel_all(self, refs: Iterable[str | None]) -> int:
        """Cancel every ref; returns how many cancel calls were made."""
        cancelled = 0
        for ref in refs:
            if not ref:
                continue
            await self.transport.cancel(ref)
            cancelled += 1
        return cancelled

    async def schedule(
        self, owner_id: str, plans: Iterable[ReminderPlan]
    ) -> list[ScheduledReminder]:
        """Schedule every plan for the record owner.

        A transport failure propagates; refs scheduled before it are lost to
        the caller.
        """
        scheduled = []
        for plan in plans:
            title, body = self.render(plan.message)
            job_ref = await self.transport.schedule(
                owner_id, plan.fire_at, title, body, plan.metadata()
            )
            scheduled.append(ScheduledReminder(job_ref=job_ref, plan=plan, title=title, body=body))
            logger.info(
                f"Scheduled {plan.analytics_event} {job_ref} "
                f"({plan.kind}, offset {plan.offset_days}d) at {plan.fire_at.isoformat()}"
            )
        return scheduled

    async def supersede(
        self, prior_refs: Iterable[str | None], scheduled: list[ScheduledReminder]
    ) -> None:
        """Deal with the refs a record held before this run's schedule calls."""
        prior = [ref for ref in prior_refs if ref]
        if not prior:
            return

        if not self.cancel_superseded_refs:
            # Known gap: these jobs stay live at the transport
            logger.debug(f"Leaving {len(prior)} superseded job refs scheduled")
            return

        current = {reminder.job_ref for reminder in scheduled}
        await self.cancel_all(ref for ref in prior if ref not in current)
