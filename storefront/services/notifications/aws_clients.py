"""
AWS SES client wrapper with error classification.

Each call is a single attempt; retrying is left to the Celery task that
delivers the message. boto3 is synchronous, so callers on the event loop
run ``send_email`` in a worker thread.
"""

from typing import Any, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
)

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

# SES error codes that will not succeed on retry.
PERMANENT_SES_ERRORS = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
        "InvalidParameterValue",
    }
)


class SESClientError(Exception):
    """
    Raised when SES refuses or fails to accept a message.

    ``permanent`` is set when sending the same message again cannot succeed.
    """

    def __init__(self, message: str, permanent: bool = False, **context: Any) -> None:
        super().__init__(message)
        self.service = "SES"
        self.permanent = permanent
        self.context = context


class SESClient:
    """AWS SES client wrapper."""

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        from_address: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        """
        Initialize SES client.

        Args:
            aws_access_key_id: AWS access key ID (defaults to settings)
            aws_secret_access_key: AWS secret access key (defaults to settings)
            region_name: AWS region name (defaults to settings)
            from_address: Default sender (defaults to settings)
            client: Pre-built boto3 SES client
        """
        settings = get_settings()
        self.from_address = from_address or settings.ses_from_email
        self.region_name = region_name or settings.aws_region

        self._client = client or boto3.client(
            "ses",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key or settings.aws_secret_access_key,
            region_name=self.region_name,
        )

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        from_address: Optional[str] = None,
        reply_to_addresses: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """
        Send an email through SES.

        Args:
            to_addresses: Recipient addresses
            subject: Email subject
            body_text: Plain text body
            body_html: Optional HTML body
            from_address: Sender (defaults to the configured sender)
            reply_to_addresses: Optional reply-to addresses

        Returns:
            Dictionary with ``message_id`` and ``status``

        Raises:
            SESClientError: If SES rejects the message or cannot be reached
        """
        if not to_addresses:
            raise SESClientError(
                "At least one recipient email address is required", permanent=True
            )

        message: dict[str, Any] = {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body_text, "Charset": "UTF-8"}},
        }
        if body_html:
            message["Body"]["Html"] = {"Data": body_html, "Charset": "UTF-8"}

        send_params: dict[str, Any] = {
            "Source": from_address or self.from_address,
            "Destination": {"ToAddresses": to_addresses},
            "Message": message,
        }
        if reply_to_addresses:
            send_params["ReplyToAddresses"] = reply_to_addresses

        try:
            response = self._client.send_email(**send_params)
        except ClientError as e:
            error = e.response.get("Error", {})
            error_code = error.get("Code", "Unknown")
            permanent = error_code in PERMANENT_SES_ERRORS
            logger.warning(
                "SES client error",
                error_code=error_code,
                error_message=error.get("Message", str(e)),
                permanent=permanent,
            )
            raise SESClientError(
                f"SES error: {error.get('Message', str(e))}",
                permanent=permanent,
                error_code=error_code,
            ) from e
        except (BotoConnectionError, EndpointConnectionError, BotoCoreError) as e:
            logger.warning("SES connection error", error=str(e))
            raise SESClientError("Could not reach SES", error=str(e)) from e

        message_id = response["MessageId"]
        logger.info("Email sent via SES", message_id=message_id, recipients=len(to_addresses))
        return {"message_id": message_id, "status": "sent"}


def get_ses_client() -> SESClient:
    """SES client configured from settings."""
    return SESClient()
