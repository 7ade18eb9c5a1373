"""Deployment notifications."""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from buildcart.config import Settings, settings as default_settings
from buildcart.models.deployment import Deployment
from buildcart.models.store import StoreSnapshot
from buildcart.utils.logging import get_logger

TEMPLATES_DIR = Path(__file__).parent / "templates"


class Notifier(ABC):
    """Tells store owners about deployment outcomes."""

    @abstractmethod
    async def notify_deployment_success(
        self, store: StoreSnapshot, deployment: Deployment
    ) -> None:
        """Notify the store owner that a deployment went live."""


class EmailNotifier(Notifier):
    """Sends deployment notifications by SMTP.

    When no SMTP host is configured the notification is logged and skipped.
    Delivery errors propagate; callers treat notification as best-effort.
    """

    def __init__(self, config: Settings | None = None):
        self.settings = config or default_settings
        self.logger = get_logger("notifier")
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def build_message(
        self, store: StoreSnapshot, deployment: Deployment
    ) -> MIMEMultipart:
        """Render the deployment email for the store owner."""
        deployed_at = deployment.deployed_at or deployment.created_at
        html = self._env.get_template("deployment_success.html").render(
            store=store,
            deployment=deployment,
            owner_name=store.owner.name or "there",
            deployed_at=deployed_at.strftime("%Y-%m-%d %H:%M UTC"),
        )

        msg = MIMEMultipart("alternative")
        msg["From"] = self.settings.smtp_from
        msg["To"] = store.owner.email
        msg["Subject"] = f'Your store "{store.name}" has been deployed!'
        msg.attach(
            MIMEText(
                f"Your store {store.name} is live at {deployment.url}", "plain", "utf-8"
            )
        )
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    async def notify_deployment_success(
        self, store: StoreSnapshot, deployment: Deployment
    ) -> None:
        if not self.settings.smtp_host:
            self.logger.warning(
                "notifier.not_configured",
                store_id=store.id,
                deployment_id=str(deployment.id),
            )
            return

        if not store.owner.email:
            self.logger.warning("notifier.no_recipient", store_id=store.id)
            return

        msg = self.build_message(store, deployment)
        await asyncio.to_thread(self._send, msg)

        self.logger.info(
            "notifier.sent",
            store_id=store.id,
            deployment_id=str(deployment.id),
            recipient=store.owner.email,
        )

    def _send(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port) as server:
            if self.settings.smtp_use_tls:
                server.starttls()
            if self.settings.smtp_username:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.send_message(msg)
