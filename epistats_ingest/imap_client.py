"""Blocking IMAP client over stdlib imaplib with implicit TLS."""

from __future__ import annotations

import imaplib
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import structlog

from .errors import AuthError, ProtocolError, TransportError

logger = structlog.get_logger()


@dataclass(frozen=True)
class PasswordCredentials:
    """Plain LOGIN with user name and password."""

    user: str
    password: str


@dataclass(frozen=True)
class BearerTokenCredentials:
    """SASL XOAUTH2 with an access token obtained elsewhere."""

    user: str
    access_token: str

    def xoauth2_string(self) -> bytes:
        return f"user={self.user}\x01auth=Bearer {self.access_token}\x01\x01".encode()


Credentials = PasswordCredentials | BearerTokenCredentials


@dataclass
class FetchedMessage:
    """Raw RFC 822 bytes of one message, keyed by its sequence number."""

    seq: int
    raw_bytes: bytes


class ImapClient:
    """Synchronous IMAP client.

    Usage::

        with ImapClient(host, port) as client:
            client.authenticate(credentials)
            client.select("INBOX")
            ids = client.search("SUBJECT report")
            for batch in ImapClient.batches(ids, 4):
                messages = client.fetch(batch)
    """

    def __init__(self, host: str, port: int = 993) -> None:
        self._host = host
        self._port = port
        self._conn: imaplib.IMAP4_SSL | None = None
        self._authenticated = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the TLS connection to the server."""
        try:
            self._conn = imaplib.IMAP4_SSL(self._host, self._port)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise TransportError(
                f"could not connect to {self._host}:{self._port}: {exc}"
            ) from exc
        logger.info("imap_connected", host=self._host, port=self._port)

    def authenticate(self, credentials: Credentials) -> None:
        """Log in with either credential variant."""
        conn = self._require_conn()
        try:
            if isinstance(credentials, BearerTokenCredentials):
                auth_string = credentials.xoauth2_string()
                conn.authenticate("XOAUTH2", lambda _challenge: auth_string)
                method = "oauth2"
            else:
                conn.login(credentials.user, credentials.password)
                method = "password"
        except (imaplib.IMAP4.error, OSError) as exc:
            raise AuthError(
                f"authentication as {credentials.user} on {self._host} failed: {exc}"
            ) from exc
        self._authenticated = True
        logger.info("imap_authenticated", user=credentials.user, method=method)

    def logout(self) -> None:
        """Log out and drop the connection.  Safe to call more than once."""
        if self._conn is None:
            return
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError):
            logger.warning("imap_logout_failed", host=self._host)
        self._conn = None
        self._authenticated = False
        logger.info("imap_disconnected")

    def __enter__(self) -> ImapClient:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.logout()

    # ------------------------------------------------------------------
    # Mailbox operations
    # ------------------------------------------------------------------

    def select(self, mailbox: str = "INBOX") -> None:
        conn = self._require_session()
        try:
            status, data = conn.select(mailbox)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ProtocolError(f"SELECT {mailbox} failed: {exc}") from exc
        if status != "OK":
            raise ProtocolError(f"SELECT {mailbox} failed: {status} {data!r}")

    def search(self, query: str) -> list[int]:
        """Run one SEARCH and return message sequence numbers, newest first."""
        conn = self._require_session()
        try:
            status, data = conn.search(None, query)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ProtocolError(f"SEARCH {query!r} failed: {exc}") from exc
        if status != "OK":
            raise ProtocolError(f"SEARCH {query!r} failed: {status} {data!r}")

        ids = sorted({int(token) for token in (data[0] or b"").split()}, reverse=True)
        logger.info("imap_search_complete", query=query, matches=len(ids))
        return ids

    def fetch(self, ids: Sequence[int]) -> list[FetchedMessage]:
        """FETCH full RFC 822 bodies for *ids*, sorted newest first."""
        conn = self._require_session()
        if not ids:
            return []
        message_set = ",".join(str(i) for i in ids)
        try:
            status, data = conn.fetch(message_set, "(RFC822)")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ProtocolError(f"FETCH {message_set} failed: {exc}") from exc
        if status != "OK":
            raise ProtocolError(f"FETCH {message_set} failed: {status} {data!r}")

        messages: list[FetchedMessage] = []
        for item in data:
            # Untagged responses arrive as (b"<seq> (RFC822 {n}", body) tuples
            # interleaved with closing b")" lines.
            if not isinstance(item, tuple) or len(item) < 2:
                continue
            seq = int(item[0].split(None, 1)[0])
            messages.append(FetchedMessage(seq=seq, raw_bytes=item[1]))

        messages.sort(key=lambda m: m.seq, reverse=True)
        logger.debug("imap_batch_fetched", message_set=message_set, fetched=len(messages))
        return messages

    @staticmethod
    def batches(ids: Sequence[int], size: int) -> Iterator[list[int]]:
        """Split *ids* into consecutive chunks of at most *size*."""
        if size < 1:
            raise ValueError("batch size must be at least 1")
        for start in range(0, len(ids), size):
            yield list(ids[start : start + size])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> imaplib.IMAP4_SSL:
        assert self._conn is not None, "Not connected"
        return self._conn

    def _require_session(self) -> imaplib.IMAP4_SSL:
        assert self._authenticated, "Not authenticated"
        return self._require_conn()
