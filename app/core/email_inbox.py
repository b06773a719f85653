"""
Inbound email integration (IMAP) for automatic resume collection.

The inbox is read synchronously (imaplib) and is meant to be driven from a
thread pool. Messages are fetched with BODY.PEEK[] so reading never flips the
\\Seen flag; they are only marked seen when IMAP_MARK_SEEN is switched on.

Security measures implemented here:
  • Attachment extensions are whitelisted (IMAP_ALLOWED_EXTENSIONS).
  • A hard blacklist of executable / dangerous extensions is applied on top of
    the whitelist, so misconfigured environments cannot accidentally allow them.
  • Attachment size is capped at IMAP_MAX_ATTACHMENT_BYTES (default 10 MB).
  • Attachment bytes stay in memory and are never written to disk or executed.
"""
import imaplib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email import message_from_bytes
from email.header import decode_header
from email.message import Message
from email.utils import parseaddr, parsedate_to_datetime
from pathlib import Path
from typing import Any, Optional

from app.core.config import get_settings
from app.models.schemas import EmailConfig

logger = logging.getLogger(__name__)
settings = get_settings()

# Extensions that must NEVER be accepted, regardless of whitelist configuration.
_BLOCKED_EXTENSIONS: frozenset[str] = frozenset({
    ".exe", ".com", ".bat", ".cmd", ".msi", ".ps1", ".psm1", ".psd1",
    ".sh", ".bash", ".zsh", ".vbs", ".vba", ".js", ".jse", ".wsf", ".wsh",
    ".dll", ".so", ".dylib", ".jar", ".scr",
    ".xlsm", ".xltm", ".xlam", ".docm", ".dotm", ".pptm", ".potm",
    ".hta", ".pif", ".lnk", ".reg", ".inf",
})

_DEFAULT_EXTENSIONS = {".pdf", ".doc", ".docx"}
_TAG_RE = re.compile(r"<[^>]+>")


class EmailInboxError(RuntimeError):
    """Raised when the mailbox cannot be read."""


class MailboxConnectionError(EmailInboxError, ConnectionError):
    """Raised when the IMAP server cannot be reached or rejects the login."""


@dataclass
class EmailAttachment:
    filename: str
    content_type: str
    size: int
    content: bytes = field(repr=False)


@dataclass
class InboundEmail:
    message_id: str
    uid: str
    sender: str
    subject: str
    date: Optional[datetime]
    body: str
    attachments: list[EmailAttachment] = field(default_factory=list)


class ImapInbox:
    """
    One IMAP session: connect(), fetch_unseen(), disconnect().

    The server coordinates come from the active EmailConfig; folder, limits
    and the mark-seen switch come from settings unless overridden.
    """

    def __init__(
        self,
        config: EmailConfig,
        folder: Optional[str] = None,
        timeout: Optional[float] = None,
        allowed_extensions: Optional[str] = None,
        max_attachment_bytes: Optional[int] = None,
        max_messages: Optional[int] = None,
        mark_seen: Optional[bool] = None,
    ) -> None:
        self.config = config
        self.folder = folder or settings.IMAP_FOLDER
        self.timeout = timeout or settings.IMAP_TIMEOUT_SECONDS
        self.allowed_ext = _allowed_extensions(
            settings.IMAP_ALLOWED_EXTENSIONS if allowed_extensions is None else allowed_extensions
        )
        self.max_attachment_bytes = max_attachment_bytes or settings.IMAP_MAX_ATTACHMENT_BYTES
        self.max_messages = max_messages or settings.IMAP_MAX_MESSAGES
        self.mark_seen = settings.IMAP_MARK_SEEN if mark_seen is None else mark_seen
        self._mailbox: Optional[imaplib.IMAP4] = None

    # ── Session ───────────────────────────────────────────────────────────────

    def connect(self) -> None:
        missing = [name for name, value in (
            ("host", self.config.host),
            ("user", self.config.user),
            ("password", self.config.password),
        ) if not value]
        if missing:
            raise MailboxConnectionError("IMAP is not configured. Missing: " + ", ".join(missing))

        try:
            if self.config.tls:
                mailbox = imaplib.IMAP4_SSL(self.config.host, self.config.port, timeout=self.timeout)
            else:
                mailbox = imaplib.IMAP4(self.config.host, self.config.port, timeout=self.timeout)
            mailbox.login(self.config.user, self.config.password)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxConnectionError(
                f"IMAP connection to {self.config.host}:{self.config.port} failed: {e}"
            ) from e

        self._mailbox = mailbox
        logger.info("email_inbox: connected to %s as %s", self.config.host, self.config.user)

    def disconnect(self) -> None:
        mailbox, self._mailbox = self._mailbox, None
        if mailbox is None:
            return
        try:
            mailbox.close()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug("email_inbox: close failed: %s", e)
        try:
            mailbox.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug("email_inbox: logout failed: %s", e)

    # ── Fetch ─────────────────────────────────────────────────────────────────

    def fetch_unseen(self) -> list[InboundEmail]:
        """Unseen messages carrying at least one acceptable resume attachment."""
        if self._mailbox is None:
            raise EmailInboxError("fetch_unseen() called before connect()")
        mailbox = self._mailbox

        try:
            status, _ = mailbox.select(self.folder)
            if status != "OK":
                raise EmailInboxError(f"Failed to select IMAP folder: {self.folder}")

            status, search_data = mailbox.uid("search", None, "UNSEEN")
            if status != "OK":
                raise EmailInboxError("IMAP search for UNSEEN messages failed")

            uids = (search_data[0] or b"").split()[-self.max_messages:]
            messages: list[InboundEmail] = []
            for raw_uid in uids:
                uid = raw_uid.decode() if isinstance(raw_uid, bytes) else str(raw_uid)
                status, msg_data = mailbox.uid("fetch", uid, "(BODY.PEEK[])")
                if status != "OK" or not msg_data:
                    logger.warning("email_inbox: fetch failed for uid=%s", uid)
                    continue

                raw = _extract_raw_email(msg_data)
                if not raw:
                    logger.warning("email_inbox: no RFC822 payload for uid=%s", uid)
                    continue

                try:
                    inbound = self.parse_message(raw, uid)
                except Exception:
                    logger.exception("email_inbox: could not parse uid=%s, skipped", uid)
                    continue
                if not inbound.attachments:
                    logger.debug("email_inbox: uid=%s has no resume attachment, ignored", uid)
                    continue

                messages.append(inbound)
                if self.mark_seen:
                    mailbox.uid("store", uid, "+FLAGS", "\\Seen")

            logger.info(
                "email_inbox: %d unseen message(s), %d with resume attachments",
                len(uids), len(messages),
            )
            return messages

        except EmailInboxError:
            raise
        except (imaplib.IMAP4.error, OSError) as e:
            raise EmailInboxError(f"IMAP receive failed: {e}") from e

    def parse_message(self, raw: bytes, uid: str) -> InboundEmail:
        message = message_from_bytes(raw)
        message_id = (message.get("Message-ID") or "").strip() or f"<uid-{uid}@{self.config.host}>"
        return InboundEmail(
            message_id=message_id,
            uid=uid,
            sender=_decode_mime(message.get("From")) or "",
            subject=_decode_mime(message.get("Subject")) or "",
            date=_parse_date(message.get("Date")),
            body=_message_body(message),
            attachments=self._resume_attachments(message),
        )

    def _resume_attachments(self, message: Message) -> list[EmailAttachment]:
        attachments: list[EmailAttachment] = []
        for part in message.walk():
            filename = _decode_mime(part.get_filename())
            if not filename:
                continue
            filename = Path(filename).name

            ext = Path(filename).suffix.lower()
            if ext in _BLOCKED_EXTENSIONS:
                logger.warning("email_inbox: rejected attachment with blocked extension: '%s'", filename)
                continue
            if ext not in self.allowed_ext:
                logger.debug("email_inbox: skipped non-resume attachment: '%s'", filename)
                continue

            payload = part.get_payload(decode=True)
            if not payload:
                continue
            if len(payload) > self.max_attachment_bytes:
                logger.warning(
                    "email_inbox: attachment '%s' is too large (%d bytes > %d limit), skipped.",
                    filename, len(payload), self.max_attachment_bytes,
                )
                continue

            attachments.append(EmailAttachment(
                filename=filename,
                content_type=part.get_content_type(),
                size=len(payload),
                content=payload,
            ))
        return attachments


# ── Helpers ───────────────────────────────────────────────────────────────────

def sender_address(sender: str) -> str:
    """Bare address from a From header ('Jane <jane@x.com>' → 'jane@x.com')."""
    return parseaddr(sender or "")[1]


def _allowed_extensions(raw: str) -> set[str]:
    exts = {e.strip().lower() for e in raw.split(",") if e.strip()}
    blocked_overlap = exts & _BLOCKED_EXTENSIONS
    if blocked_overlap:
        logger.warning(
            "email_inbox: the following extensions are in IMAP_ALLOWED_EXTENSIONS "
            "but are blocked for security: %s", blocked_overlap
        )
    return (exts or _DEFAULT_EXTENSIONS) - _BLOCKED_EXTENSIONS


def _decode_bytes(data: bytes, charset: str | None) -> str:
    try:
        return data.decode(charset or "utf-8", errors="replace")
    except LookupError:
        # unknown charset label
        return data.decode("utf-8", errors="replace")


def _decode_mime(value: str | None) -> str | None:
    if not value:
        return None
    parts = []
    for part, enc in decode_header(value):
        if isinstance(part, bytes):
            parts.append(_decode_bytes(part, enc))
        else:
            parts.append(part)
    return "".join(parts).strip() or None


def _parse_date(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def _message_body(message: Message) -> str:
    """First text/plain body part; text/html with tags stripped as a fallback."""
    html = None
    for part in message.walk():
        if part.get_filename() or part.is_multipart():
            continue
        ctype = part.get_content_type()
        if ctype not in ("text/plain", "text/html"):
            continue
        payload = part.get_payload(decode=True) or b""
        text = _decode_bytes(payload, part.get_content_charset())
        if ctype == "text/plain":
            return text.strip()
        if html is None:
            html = _TAG_RE.sub(" ", text)
    return (html or "").strip()


def _extract_raw_email(msg_data: list[Any]) -> bytes:
    for part in msg_data:
        if isinstance(part, tuple) and len(part) >= 2 and isinstance(part[1], (bytes, bytearray)):
            return bytes(part[1])
    return b""
