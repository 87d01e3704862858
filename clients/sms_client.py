"""
SMS gateway client for delivering one-time codes.

Posts JSON to an HTTP gateway, authenticated with an API key and an
HMAC-SHA256 signature over the exact request body.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)


class SmsGatewayError(Exception):
    """Raised when SMS gateway request fails."""


class SmsGatewayClient:
    """Send SMS via HTTP gateway with HMAC signature verification."""

    def __init__(
        self,
        gateway_url: str,
        api_key: str,
        hmac_secret: str,
        app_name: str = "Marketplace Mandi",
    ):
        """
        Initialize with gateway credentials.

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.app_name = app_name

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            SmsGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=10,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"SMS gateway connection failed: {e}")
            raise SmsGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"SMS gateway returned invalid JSON: {response.text}")
            raise SmsGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"SMS gateway error: {error_msg}")
            raise SmsGatewayError(f"Gateway error: {error_msg}")

    def send_sms(self, phone_number: str, message: str) -> None:
        """
        Send a text message.

        Raises:
            SmsGatewayError: On any failure
        """
        self._sign_and_send({"to": phone_number, "message": message})

    def send_otp(self, phone_number: str, code: str, expiry_minutes: int) -> None:
        """
        Send a one-time code.

        Raises:
            SmsGatewayError: On any failure
        """
        message = (
            f"Your {self.app_name} OTP is {code}. "
            f"Valid for {expiry_minutes} minutes."
        )
        self.send_sms(phone_number, message)
        logger.info(f"OTP SMS sent to {phone_number[:-4]}****")
