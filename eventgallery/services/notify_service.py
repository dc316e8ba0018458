import asyncio
import logging
import smtplib
from email.message import EmailMessage

from eventgallery.api.schemas import IngestResult

logger = logging.getLogger("eventgallery.notify")


def build_ingest_message(result: IngestResult, sender: str, recipient: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"{result.accepted} new upload(s) awaiting moderation"
    msg["From"] = sender
    msg["To"] = recipient
    lines = [f"{result.accepted} file(s) were added to the pending area.", ""]
    lines.extend(f"  - {name}" for name in result.stored[:50])
    if len(result.stored) > 50:
        lines.append(f"  ... and {len(result.stored) - 50} more")
    if result.failed:
        lines.append("")
        lines.append("Rejected during ingest:")
        lines.extend(f"  - {item.filename}: {item.error}" for item in result.failed)
    msg.set_content("\n".join(lines))
    return msg


class EmailNotifier:
    """Sends an ingest summary to the admin over SMTP."""

    def __init__(self, settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.notifications_enabled

    def send(self, result: IngestResult):
        s = self.settings
        sender = s.notify_from or s.smtp_user or s.notify_to
        msg = build_ingest_message(result, sender, s.notify_to)
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=15) as smtp:
            if s.smtp_starttls:
                smtp.starttls()
            if s.smtp_user:
                smtp.login(s.smtp_user, s.smtp_password or "")
            smtp.send_message(msg)
        logger.info("Ingest notification sent to %s (%s files)", s.notify_to, result.accepted)

    async def __call__(self, result: IngestResult):
        if not self.enabled or result.accepted == 0:
            return
        await asyncio.to_thread(self.send, result)
