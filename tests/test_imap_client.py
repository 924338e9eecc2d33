"""Tests for epistats_ingest.imap_client."""

from __future__ import annotations

import imaplib
from unittest.mock import MagicMock, patch

import pytest

from epistats_ingest.errors import AuthError, ProtocolError, TransportError
from epistats_ingest.imap_client import (
    BearerTokenCredentials,
    FetchedMessage,
    ImapClient,
    PasswordCredentials,
)

PASSWORD = PasswordCredentials(user="testuser", password="testpass")


def _make_mock_imap(
    *,
    search_ids: list[bytes] | None = None,
    fetch_data: dict[int, bytes] | None = None,
) -> MagicMock:
    """Create a mock imaplib.IMAP4_SSL with programmed responses."""
    mock = MagicMock()
    mock.login.return_value = ("OK", [b"Logged in"])
    mock.authenticate.return_value = ("OK", [b"Authenticated"])
    mock.select.return_value = ("OK", [b"12"])
    mock.logout.return_value = ("BYE", [b"Bye"])
    mock.search.return_value = ("OK", [b" ".join(search_ids or [])])
    mock.fetch.side_effect = _make_fetch_handler(fetch_data or {})
    return mock


def _make_fetch_handler(fetch_data: dict[int, bytes]):
    """Answer FETCH for a comma-separated message set, in server order."""

    def handler(message_set: str, parts: str):
        response: list[object] = []
        for token in message_set.split(","):
            raw = fetch_data.get(int(token))
            if raw is None:
                continue
            response.append((b"%s (RFC822 {%d}" % (token.encode(), len(raw)), raw))
            response.append(b")")
        return ("OK", response)

    return handler


@pytest.fixture
def mock_conn() -> MagicMock:
    return _make_mock_imap()


class TestImapClientLifecycle:
    def test_connect_uses_tls(self, mock_conn: MagicMock):
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            with ImapClient("imap.test.com", 993):
                MockSSL.assert_called_once_with("imap.test.com", 993)
            mock_conn.logout.assert_called_once()

    def test_connect_failure_is_transport_error(self):
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.side_effect = ConnectionRefusedError("refused")
            with pytest.raises(TransportError, match="imap.test.com:993"):
                ImapClient("imap.test.com").connect()

    def test_logout_after_error_in_block(self, mock_conn: MagicMock):
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            with pytest.raises(RuntimeError):
                with ImapClient("imap.test.com"):
                    raise RuntimeError("boom")
            mock_conn.logout.assert_called_once()

    def test_logout_error_not_raised(self, mock_conn: MagicMock):
        mock_conn.logout.side_effect = imaplib.IMAP4.abort("socket closed")
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            client = ImapClient("imap.test.com")
            client.connect()
            client.logout()
            client.logout()
        mock_conn.logout.assert_called_once()


class TestImapClientAuthenticate:
    def test_password_login(self, mock_conn: MagicMock):
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            with ImapClient("imap.test.com") as client:
                client.authenticate(PASSWORD)
        mock_conn.login.assert_called_once_with("testuser", "testpass")
        mock_conn.authenticate.assert_not_called()

    def test_bearer_token_uses_xoauth2(self, mock_conn: MagicMock):
        creds = BearerTokenCredentials(user="me@example.com", access_token="tok")
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            with ImapClient("imap.test.com") as client:
                client.authenticate(creds)

        mechanism, responder = mock_conn.authenticate.call_args.args
        assert mechanism == "XOAUTH2"
        assert responder(b"") == b"user=me@example.com\x01auth=Bearer tok\x01\x01"
        mock_conn.login.assert_not_called()

    def test_xoauth2_string(self):
        creds = BearerTokenCredentials(user="u", access_token="t")
        assert creds.xoauth2_string() == b"user=u\x01auth=Bearer t\x01\x01"

    def test_login_rejected_is_auth_error(self, mock_conn: MagicMock):
        mock_conn.login.side_effect = imaplib.IMAP4.error("AUTHENTICATIONFAILED")
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            with ImapClient("imap.test.com") as client:
                with pytest.raises(AuthError, match="testuser"):
                    client.authenticate(PASSWORD)

    def test_commands_require_authentication(self, mock_conn: MagicMock):
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = mock_conn
            with ImapClient("imap.test.com") as client:
                with pytest.raises(AssertionError, match="Not authenticated"):
                    client.search("ALL")


class TestImapClientMailbox:
    def _client(self, mock: MagicMock) -> ImapClient:
        client = ImapClient("imap.test.com")
        with patch("epistats_ingest.imap_client.imaplib.IMAP4_SSL", return_value=mock):
            client.connect()
        client.authenticate(PASSWORD)
        return client

    def test_select_failure(self, mock_conn: MagicMock):
        mock_conn.select.return_value = ("NO", [b"Mailbox does not exist"])
        client = self._client(mock_conn)
        with pytest.raises(ProtocolError, match="SELECT INBOX"):
            client.select("INBOX")

    def test_search_sorted_newest_first(self):
        mock = _make_mock_imap(search_ids=[b"3", b"10", b"7"])
        client = self._client(mock)
        assert client.search('SUBJECT "data"') == [10, 7, 3]
        mock.search.assert_called_once_with(None, 'SUBJECT "data"')

    def test_search_empty(self):
        client = self._client(_make_mock_imap(search_ids=[]))
        assert client.search("ALL") == []

    def test_search_failure(self, mock_conn: MagicMock):
        mock_conn.search.side_effect = imaplib.IMAP4.error("BAD syntax")
        client = self._client(mock_conn)
        with pytest.raises(ProtocolError, match="SEARCH"):
            client.search("BOGUS")

    def test_fetch_sorted_newest_first(self):
        mock = _make_mock_imap(fetch_data={4: b"four", 6: b"six", 5: b"five"})
        client = self._client(mock)
        fetched = client.fetch([4, 6, 5])
        assert fetched == [
            FetchedMessage(seq=6, raw_bytes=b"six"),
            FetchedMessage(seq=5, raw_bytes=b"five"),
            FetchedMessage(seq=4, raw_bytes=b"four"),
        ]
        mock.fetch.assert_called_once_with("4,6,5", "(RFC822)")

    def test_fetch_empty_batch_skips_server(self, mock_conn: MagicMock):
        client = self._client(mock_conn)
        assert client.fetch([]) == []
        mock_conn.fetch.assert_not_called()

    def test_fetch_failure(self, mock_conn: MagicMock):
        mock_conn.fetch.side_effect = None
        mock_conn.fetch.return_value = ("NO", [b"error"])
        client = self._client(mock_conn)
        with pytest.raises(ProtocolError, match="FETCH 1"):
            client.fetch([1])


class TestBatches:
    def test_fixed_size_chunks(self):
        assert list(ImapClient.batches([9, 8, 7, 6, 5, 4, 3, 2, 1], 4)) == [
            [9, 8, 7, 6],
            [5, 4, 3, 2],
            [1],
        ]

    def test_empty(self):
        assert list(ImapClient.batches([], 4)) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            list(ImapClient.batches([1], 0))
