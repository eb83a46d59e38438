# utils/mailer.py
import asyncio
import os
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from html import escape

from finder.exceptions import MailerError
from utils.log import get_logger

logger = get_logger("mailer")


def listing_subject(book_title, count):
    # header values must stay on one line
    title = " ".join(book_title.split())
    plural = "s" if count != 1 else ""
    return f"📚 {count} listing{plural} found: {title}"


def render_listing_text(name, book_title, results):
    lines = [
        f"Hello {name},",
        "",
        f'We found {len(results)} listing{"s" if len(results) != 1 else ""} for "{book_title}":',
        "",
    ]
    for r in results:
        source = f"{r.source} - {r.seller}" if r.seller else r.source
        lines.append(f"* {r.title}")
        lines.append(f"  {r.price} | {source}")
        if r.condition:
            lines.append(f"  Condition: {r.condition}")
        lines.append(f"  {r.link}")
        lines.append("")
    lines.append("You can manage your book list and notification preferences in the app.")
    return "\n".join(lines)


def render_listing_html(name, book_title, results, day):
    items = []
    for r in results:
        source = escape(r.source)
        if r.seller:
            source += f" &bull; {escape(r.seller)}"
        condition = (
            f'<div class="condition">Condition: {escape(r.condition)}</div>' if r.condition else ""
        )
        items.append(
            '<div class="result">'
            f'<div class="result-title">{escape(r.title)}</div>'
            f'<div class="price">{escape(r.price)}</div>'
            f'<div class="source">{source}</div>'
            f"{condition}"
            f'<a href="{escape(r.link, quote=True)}" class="link">View Listing</a>'
            "</div>"
        )
    count = len(results)
    plural = "s" if count != 1 else ""
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head><body>"
        f"<h1>Book Found!</h1><h2>{escape(book_title)}</h2>"
        f"<p>Hello {escape(name)},</p>"
        f"<p>We found <strong>{count}</strong> listing{plural} for "
        f"\"<strong>{escape(book_title)}</strong>\" ({day}):</p>"
        f"{''.join(items)}"
        "<p><small>To stop receiving these notifications, update your preferences in the app.</small></p>"
        "</body></html>"
    )


class Mailer:
    """
    SMTP transport for outbound notification mail.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS when
    the server offers it. Failures raise MailerError.
    """

    def __init__(self, host, port=465, user=None, password=None, from_email=None,
                 from_name="Book Tracker"):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.from_name = from_name

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_pass,
            settings.from_email,
        )

    def build_listing_message(self, to_email, name, book_title, results, now=None):
        now = now or datetime.now(timezone.utc)
        msg = EmailMessage()
        msg["Subject"] = listing_subject(book_title, len(results))
        msg["From"] = f'"{self.from_name}" <{self.from_email}>'
        msg["To"] = to_email
        msg.set_content(render_listing_text(name, book_title, results))
        msg.add_alternative(
            render_listing_html(name, book_title, results, now.date().isoformat()),
            subtype="html",
        )
        return msg

    def build_text_message(self, to_email, subject, body, attachments=None):
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f'"{self.from_name}" <{self.from_email}>'
        msg["To"] = to_email
        msg.set_content(body)

        for file_path in attachments or []:
            try:
                with open(file_path, "rb") as f:
                    data = f.read()
            except OSError as e:
                logger.warning(f"Failed to attach {file_path}: {e}")
                continue
            msg.add_attachment(
                data,
                maintype="application",
                subtype="octet-stream",
                filename=os.path.basename(file_path),
            )
        return msg

    def send(self, msg):
        if not (self.host and self.from_email):
            raise MailerError("SMTP is not configured (SMTP_HOST / FROM_EMAIL)")
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port) as server:
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.send_message(msg)
                    return

            with smtplib.SMTP(self.host, self.port) as server:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailerError(f"Failed to send mail to {msg['To']}: {e}") from e

    async def send_listings(self, to_email, name, book_title, results):
        """Email one user every listing found for one book."""
        msg = self.build_listing_message(to_email, name or to_email, book_title, results)
        await asyncio.to_thread(self.send, msg)
        logger.info(f"Email sent to {to_email} for book: {book_title} ({len(results)} results)")

    async def send_text(self, to_email, subject, body, attachments=None):
        msg = self.build_text_message(to_email, subject, body, attachments)
        await asyncio.to_thread(self.send, msg)
