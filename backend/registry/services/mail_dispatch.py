"""
Mail dispatch - client for the remote serverless function that sends email.

The function accepts {to, subject, html, trainerName} and answers with a
JSON object that may carry an "error" field. Delivery is fire-and-report:
a successful call says the function accepted the message, nothing more.
"""

import os

import httpx


MAIL_FUNCTION_URL = os.getenv("MAIL_FUNCTION_URL", "")
MAIL_FUNCTION_KEY = os.getenv("MAIL_FUNCTION_KEY", "")
MAIL_FUNCTION_TIMEOUT = float(os.getenv("MAIL_FUNCTION_TIMEOUT", "15"))


class MailDispatchError(Exception):
    pass


class MailDispatcher:
    def send(self, *, recipient: str, subject: str, html: str, display_name: str) -> None:
        raise NotImplementedError


class UnconfiguredDispatcher(MailDispatcher):
    def send(self, *, recipient: str, subject: str, html: str, display_name: str) -> None:
        raise MailDispatchError("No mail-dispatch function configured (MAIL_FUNCTION_URL)")


class HttpFunctionDispatcher(MailDispatcher):
    def __init__(self, url: str, api_key: str = "", timeout: float = MAIL_FUNCTION_TIMEOUT,
                 transport: httpx.BaseTransport = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def send(self, *, recipient: str, subject: str, html: str, display_name: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = "Bearer {}".format(self.api_key)
        payload = {
            "to": recipient,
            "subject": subject,
            "html": html,
            "trainerName": display_name,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as http:
                resp = http.post(self.url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise MailDispatchError("Mail function unreachable: {}".format(e)) from e

        if resp.status_code >= 400:
            raise MailDispatchError("Mail function returned HTTP {}: {}".format(
                resp.status_code, resp.text[:200]))
        try:
            body = resp.json()
        except ValueError:
            return
        if isinstance(body, dict) and body.get("error"):
            raise MailDispatchError("Mail function reported: {}".format(body["error"]))


def get_mail_dispatcher() -> MailDispatcher:
    if not MAIL_FUNCTION_URL:
        return UnconfiguredDispatcher()
    return HttpFunctionDispatcher(MAIL_FUNCTION_URL, MAIL_FUNCTION_KEY)
