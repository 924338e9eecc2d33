"""MIME parsing of fetched messages: the Date header and named attachments."""

from __future__ import annotations

import email
import email.message
import email.policy
from dataclasses import dataclass, field


@dataclass
class ParsedAttachment:
    """A single attachment extracted from a MIME message."""

    filename: str
    content_type: str
    payload: bytes


@dataclass
class ParsedMessage:
    """The parts of a message the attachment search looks at."""

    date: str
    attachments: list[ParsedAttachment] = field(default_factory=list)


def parse_message(raw_bytes: bytes) -> ParsedMessage:
    """Parse raw RFC 822 bytes into a :class:`ParsedMessage`."""
    msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
    return ParsedMessage(
        date=str(msg.get("Date", "")),
        attachments=_extract_attachments(msg),
    )


def _extract_attachments(msg: email.message.Message) -> list[ParsedAttachment]:
    """Walk MIME parts and collect attachments in document order."""
    attachments: list[ParsedAttachment] = []

    for part in msg.walk():
        if part.get_content_maintype() == "multipart":
            continue

        disposition = str(part.get("Content-Disposition", ""))
        filename = part.get_filename()

        # Attachment: has Content-Disposition: attachment, or is a named part
        if "attachment" not in disposition and not filename:
            continue

        payload = part.get_content()
        if isinstance(payload, bytes):
            raw = payload
        elif isinstance(payload, str):
            raw = payload.encode("utf-8")
        else:
            continue

        attachments.append(
            ParsedAttachment(
                filename=filename or "unnamed",
                content_type=part.get_content_type(),
                payload=raw,
            )
        )

    return attachments
