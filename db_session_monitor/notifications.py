"""
Notification System for DB Session Monitor.

This module provides the notifier contract consumed by the monitor and its
channels: email (SMTP), Slack incoming webhooks, generic JSON webhooks, a
broadcasting composite and a capture-only mock for tests.

Author: DB Session Monitor
Version: 0.1.0
"""

import logging
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import aiosmtplib

from .config import EmailConfig, MonitorConfig
from .exceptions import NotificationError


class Notifier(ABC):
    """Base class for notification channels."""

    channel_type = "base"

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def send_alert(self, subject: str, body: str) -> None:
        """
        Deliver an alert.

        Raises:
            NotificationError: when delivery fails
        """
        pass


class EmailNotifier(Notifier):
    """Email notification channel."""

    channel_type = "email"

    def __init__(self, config: EmailConfig):
        super().__init__()
        self.config = config

    def _build_message(self, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, 'plain', 'utf-8')
        msg['From'] = self.config.from_email
        msg['To'] = ', '.join(self.config.to_emails)
        msg['Subject'] = subject
        return msg

    def _smtp_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            'hostname': self.config.smtp_host,
            'port': self.config.smtp_port,
            'timeout': self.config.timeout,
            'use_tls': self.config.use_tls,
        }
        if not self.config.use_tls:
            options['start_tls'] = self.config.start_tls
        return options

    async def send_alert(self, subject: str, body: str) -> None:
        """Send email notification."""
        if not self.config.to_emails:
            raise NotificationError("No email recipients configured", channel_type=self.channel_type)

        try:
            await aiosmtplib.send(
                self._build_message(subject, body),
                username=self.config.username or None,
                password=self.config.password or None,
                **self._smtp_options()
            )
        except Exception as e:
            raise NotificationError(
                "Email delivery failed",
                channel_type=self.channel_type,
                recipient=', '.join(self.config.to_emails),
                original_error=e
            ) from e

        self.logger.info(f"Email sent: {subject}")

    async def test_connection(self) -> None:
        """
        Connect (and log in, when credentials are configured) to the SMTP server.

        Raises:
            NotificationError: when the server cannot be reached or rejects the login
        """
        smtp = aiosmtplib.SMTP(**self._smtp_options())
        try:
            await smtp.connect()
            if self.config.username:
                await smtp.login(self.config.username, self.config.password)
            await smtp.quit()
        except Exception as e:
            raise NotificationError(
                f"Failed to connect to SMTP server {self.config.smtp_host}:{self.config.smtp_port}",
                channel_type=self.channel_type,
                original_error=e
            ) from e

        self.logger.info("SMTP connection test succeeded")


class WebhookNotifier(Notifier):
    """Generic JSON webhook channel posting ``{"subject", "body"}``."""

    channel_type = "webhook"

    def __init__(self, url: str, headers: Optional[Dict[str, str]] = None, timeout: float = 30.0):
        super().__init__()
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def build_payload(self, subject: str, body: str) -> Dict[str, Any]:
        return {'subject': subject, 'body': body}

    async def send_alert(self, subject: str, body: str) -> None:
        payload = self.build_payload(subject, body)
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(self.url, json=payload, headers=self.headers) as response:
                    if response.status >= 300:
                        error_text = await response.text()
                        raise NotificationError(
                            f"{self.channel_type} endpoint returned HTTP {response.status}: {error_text[:200]}",
                            channel_type=self.channel_type,
                            recipient=self.url
                        )
        except NotificationError:
            raise
        except Exception as e:
            raise NotificationError(
                f"{self.channel_type} delivery failed",
                channel_type=self.channel_type,
                recipient=self.url,
                original_error=e
            ) from e

        self.logger.info(f"{self.channel_type} notification sent: {subject}")


class SlackNotifier(WebhookNotifier):
    """Slack incoming-webhook channel."""

    channel_type = "slack"

    def __init__(self, webhook_url: str, timeout: float = 30.0):
        super().__init__(webhook_url, timeout=timeout)

    def build_payload(self, subject: str, body: str) -> Dict[str, Any]:
        return {'text': f"*{subject}*\n```{body.strip()}```"}


class MultiNotifier(Notifier):
    """Broadcasts every alert to all notifiers, continuing past failures."""

    channel_type = "multi"

    def __init__(self, *notifiers: Notifier):
        super().__init__()
        self.notifiers: List[Notifier] = list(notifiers)

    async def send_alert(self, subject: str, body: str) -> None:
        """
        Send to every notifier.

        Raises:
            NotificationError: the last failure, after all notifiers were tried
        """
        last_error: Optional[NotificationError] = None
        for notifier in self.notifiers:
            try:
                await notifier.send_alert(subject, body)
            except NotificationError as e:
                self.logger.error(f"Notifier {notifier.channel_type} failed: {e}")
                last_error = e
            except Exception as e:
                self.logger.error(f"Notifier {notifier.channel_type} failed unexpectedly: {e}")
                last_error = NotificationError(
                    f"{notifier.channel_type} delivery failed",
                    channel_type=notifier.channel_type,
                    original_error=e
                )

        if last_error is not None:
            raise last_error


class MockNotifier(Notifier):
    """Capture-only notifier for tests."""

    channel_type = "mock"

    def __init__(self):
        super().__init__()
        self.sent_alerts: List[Tuple[str, str]] = []

    async def send_alert(self, subject: str, body: str) -> None:
        self.sent_alerts.append((subject, body))
        self.logger.debug(f"Mock alert: {subject}")

    @property
    def last_alert(self) -> Tuple[str, str]:
        if not self.sent_alerts:
            return "", ""
        return self.sent_alerts[-1]

    @property
    def alert_count(self) -> int:
        return len(self.sent_alerts)

    def clear(self) -> None:
        self.sent_alerts.clear()


def build_notifier(config: MonitorConfig) -> Notifier:
    """
    Build the notifier for the configured channels.

    Raises:
        NotificationError: when no channel is configured
    """
    notifiers: List[Notifier] = []
    if config.email.is_configured:
        notifiers.append(EmailNotifier(config.email))
    if config.slack.is_configured:
        notifiers.append(SlackNotifier(config.slack.webhook_url, timeout=config.slack.timeout))
    if config.webhook.is_configured:
        notifiers.append(WebhookNotifier(config.webhook.url, headers=config.webhook.headers, timeout=config.webhook.timeout))

    if not notifiers:
        raise NotificationError("No notification channel configured")
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(*notifiers)
