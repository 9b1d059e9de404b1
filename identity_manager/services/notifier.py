"""Delivers account e-mail over SMTP."""

from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional
import logging
import smtplib

from ..domain import Result

logger = logging.getLogger(__name__)


class MailNotifier(object):
    """Sends HTML messages through an SMTP service."""

    def __init__(self, host: str = "", port: int = 0,
                 sender: str = "", sender_name: str = "",
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 use_tls: bool = False, timeout: float = 10) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._sender_name = sender_name
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def _new_connection(self) -> smtplib.SMTP:
        return smtplib.SMTP(host=self._host, port=self._port,
                            timeout=self._timeout)

    def message(self, to_address: str, subject: str,
                body: str) -> EmailMessage:
        """Build the message for an HTML ``body``."""
        message = EmailMessage()
        message['From'] = formataddr((self._sender_name, self._sender))
        message['To'] = to_address
        message['Subject'] = subject
        message.set_content(body, subtype='html')
        return message

    def send(self, to_address: str, subject: str, body: str) -> Result:
        """
        Send a message.

        Delivery problems are reported in the :class:`.Result`, not raised.
        """
        message = self.message(to_address, subject, body)
        try:
            with self._new_connection() as conn:
                if self._use_tls:
                    conn.starttls()
                if self._username:
                    conn.login(self._username, self._password or '')
                conn.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning('Could not send "%s" message: %s', subject, e)
            return Result.failed(f'Could not send message: {e}')
        logger.debug('Sent "%s" message', subject)
        return Result.success()
