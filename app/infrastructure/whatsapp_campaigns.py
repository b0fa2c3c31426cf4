"""
WhatsApp campaign API integration.

Reminders are scheduled on the campaign platform when an appointment is
confirmed; the platform fires them, so nothing is polled locally. Job ids it
returns are kept on the appointment so the jobs can be cancelled later.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.config.settings import get_settings
from app.domain.reminder import ReminderKind, WhatsAppJobRef
from app.usecases.reminder_plan import build_reminder_plan
from app.utils.time import to_unix_timestamp

logger = logging.getLogger(__name__)


class WhatsAppApiError(Exception):
    """The campaign API rejected a request or returned something unusable."""


class WhatsAppTransportError(WhatsAppApiError):
    """The campaign API could not be reached or timed out."""


class WhatsAppCampaignClient:
    """Client for the template-based WhatsApp campaign API."""

    SEND_PATH = "/wapp/api/v2/send/bytemplate"
    CANCEL_PATH = "/wapp/api/cancel/campaign"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.whatsapp_api_key
        self.base_url = (base_url or settings.whatsapp_api_base_url).rstrip("/")
        self.timeout = timeout or settings.whatsapp_timeout_seconds

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Issue an authenticated GET and return the decoded JSON body.

        Raises:
            WhatsAppTransportError: On timeouts and connection failures
            WhatsAppApiError: On non-2xx status or a body that is not a JSON object
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params={"apikey": self.api_key, **params})
        except httpx.TimeoutException as e:
            raise WhatsAppTransportError(f"Timeout calling {path}") from e
        except httpx.HTTPError as e:
            raise WhatsAppTransportError(f"Error calling {path}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise WhatsAppApiError(f"HTTP {response.status_code} from {path}: {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            raise WhatsAppApiError(f"Malformed JSON from {path}") from e

        if not isinstance(data, dict):
            raise WhatsAppApiError(f"Unexpected response from {path}: {data!r}")
        return data

    @staticmethod
    def _request_id(data: Dict[str, Any]) -> str:
        request_id = data.get("requestid")
        if not request_id:
            raise WhatsAppApiError(f"No requestid in response: {data!r}")
        return str(request_id)

    async def schedule(
        self,
        template: str,
        recipient: str,
        send_at: datetime,
        variables: Iterable[str],
    ) -> str:
        """
        Schedule a template message for later delivery.

        Returns:
            The platform's job id
        """
        data = await self._get(
            self.SEND_PATH,
            {
                "templatename": template,
                "mobile": recipient,
                "scheduledate": to_unix_timestamp(send_at),
                "dvariables": ",".join(variables),
            },
        )
        return self._request_id(data)

    async def cancel(self, job_id: str) -> Dict[str, Any]:
        """Cancel a previously scheduled job."""
        return await self._get(self.CANCEL_PATH, {"campid": job_id})

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(WhatsAppTransportError),
        reraise=True,
    )
    async def send_template(self, template: str, recipient: str, variables: Iterable[str]) -> Dict[str, Any]:
        """Send a template message right away, retrying transport failures."""
        return await self._get(
            self.SEND_PATH,
            {
                "templatename": template,
                "mobile": recipient,
                "dvariables": ",".join(variables),
            },
        )


def reminder_variables(appointment, kind: ReminderKind) -> List[str]:
    """Template variables for a scheduled reminder."""
    if kind == ReminderKind.DAY_BEFORE:
        return [
            appointment.name,
            appointment.service_label,
            appointment.slot_date.isoformat(),
            appointment.slot_start_time,
            appointment.meeting_link or "",
        ]
    if kind in (ReminderKind.THIRTY_MINUTES, ReminderKind.TEN_MINUTES):
        return [appointment.name, appointment.service_label, appointment.meeting_link or ""]
    return [appointment.name, appointment.meeting_link or ""]


def notice_variables(appointment) -> List[str]:
    """Template variables for the confirmation and reschedule notices."""
    return [
        appointment.name,
        appointment.service_label,
        f"{appointment.slot_date.isoformat()} {appointment.slot_start_time}",
        appointment.meeting_link or "",
    ]


async def schedule_whatsapp_reminders(
    appointment,
    client: WhatsAppCampaignClient,
    now: Optional[datetime] = None,
) -> List[WhatsAppJobRef]:
    """
    Schedule the appointment's reminders on the campaign platform.

    A failed offset is logged and skipped; the rest are still scheduled.

    Returns:
        References to the jobs that were scheduled
    """
    refs = []
    for planned in build_reminder_plan(appointment, now=now):
        try:
            job_id = await client.schedule(
                planned.kind.whatsapp_template,
                appointment.phone,
                planned.scheduled_time,
                reminder_variables(appointment, planned.kind),
            )
        except WhatsAppApiError as e:
            logger.error(f"Failed to schedule {planned.kind.value} WhatsApp reminder for appointment {appointment.id}: {e}")
            continue
        except Exception as e:
            logger.exception(f"Error scheduling {planned.kind.value} WhatsApp reminder for appointment {appointment.id}: {e}")
            continue

        refs.append(WhatsAppJobRef(delay=planned.kind, job_id=job_id))
        logger.info(f"Scheduled {planned.kind.value} WhatsApp reminder {job_id} for {planned.scheduled_time}")

    return refs


async def cancel_whatsapp_reminders(job_ids: Iterable[str], client: WhatsAppCampaignClient) -> int:
    """
    Cancel scheduled jobs, one call per id. Failures are logged and skipped.

    Returns:
        Number of cancellations the platform acknowledged
    """
    cancelled = 0
    for job_id in job_ids:
        try:
            data = await client.cancel(job_id)
        except WhatsAppApiError as e:
            logger.error(f"Failed to cancel WhatsApp job {job_id}: {e}")
            continue
        except Exception as e:
            logger.exception(f"Error cancelling WhatsApp job {job_id}: {e}")
            continue

        cancelled += 1
        logger.info(f"Cancelled WhatsApp job {job_id}: {data}")
    return cancelled
