"""
Test suite for the AWS SES client wrapper.

Tests cover message construction, retry with exponential backoff for
throttling and connection errors, and immediate failure for errors SES
will never accept.
"""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from src.services.notifications.aws_clients import SESClient, SESClientError


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def boto_client() -> MagicMock:
    client = MagicMock()
    client.send_email.return_value = {"MessageId": "msg-123"}
    return client


@pytest.fixture
def ses_client(boto_client) -> SESClient:
    return SESClient(
        from_address="orders@example.com",
        max_retries=3,
        retry_backoff=0.1,
        client=boto_client,
    )


@pytest.fixture
def no_sleep():
    with patch("src.services.notifications.aws_clients.time.sleep") as sleep:
        yield sleep


def _client_error(code: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} happened"}},
        "SendEmail",
    )


# ============================================================================
# Send Email Tests
# ============================================================================


class TestSendEmail:
    """SESClient.send_email."""

    def test_success(self, ses_client, boto_client):
        result = ses_client.send_email(
            to_addresses=["john@example.com"],
            subject="Your order J1 is complete",
            body_text="Thanks",
            body_html="<p>Thanks</p>",
        )

        assert result == {
            "message_id": "msg-123",
            "status": "sent",
            "to_addresses": ["john@example.com"],
        }
        kwargs = boto_client.send_email.call_args.kwargs
        assert kwargs["Source"] == "orders@example.com"
        assert kwargs["Destination"] == {"ToAddresses": ["john@example.com"]}
        assert kwargs["Message"]["Body"]["Html"]["Data"] == "<p>Thanks</p>"

    def test_text_only(self, ses_client, boto_client):
        ses_client.send_email(["john@example.com"], "Subject", "Body")

        body = boto_client.send_email.call_args.kwargs["Message"]["Body"]
        assert "Html" not in body
        assert body["Text"]["Data"] == "Body"

    def test_explicit_sender(self, ses_client, boto_client):
        ses_client.send_email(
            ["john@example.com"], "Subject", "Body", from_address="support@example.com"
        )

        assert boto_client.send_email.call_args.kwargs["Source"] == "support@example.com"

    def test_no_recipients(self, ses_client, boto_client):
        with pytest.raises(SESClientError):
            ses_client.send_email([], "Subject", "Body")

        boto_client.send_email.assert_not_called()

    def test_non_retryable_error(self, ses_client, boto_client, no_sleep):
        boto_client.send_email.side_effect = _client_error("MessageRejected")

        with pytest.raises(SESClientError) as exc_info:
            ses_client.send_email(["john@example.com"], "Subject", "Body")

        assert exc_info.value.context["error_code"] == "MessageRejected"
        assert boto_client.send_email.call_count == 1
        no_sleep.assert_not_called()

    def test_throttling_retried(self, ses_client, boto_client, no_sleep):
        boto_client.send_email.side_effect = [
            _client_error("Throttling"),
            {"MessageId": "msg-456"},
        ]

        result = ses_client.send_email(["john@example.com"], "Subject", "Body")

        assert result["message_id"] == "msg-456"
        no_sleep.assert_called_once_with(0.1)

    def test_backoff_doubles(self, ses_client, boto_client, no_sleep):
        boto_client.send_email.side_effect = EndpointConnectionError(
            endpoint_url="https://email.us-east-1.amazonaws.com"
        )

        with pytest.raises(SESClientError):
            ses_client.send_email(["john@example.com"], "Subject", "Body")

        assert boto_client.send_email.call_count == 3
        assert [call.args[0] for call in no_sleep.call_args_list] == [0.1, 0.2]
