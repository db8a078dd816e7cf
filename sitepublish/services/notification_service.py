"""
Notification service for publish outcomes
"""
from datetime import datetime

import requests

from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Sends publish outcomes to an SNS topic and/or a Slack or Discord webhook.

    Delivery is best effort: failures are logged and never change the
    job's outcome.
    """

    def __init__(self, config: dict, sns_client=None):
        """
        Initialize notification service.

        Args:
            config: Configuration dictionary
            sns_client: boto3 SNS client, required for topic notifications
        """
        self.config = config
        self.enabled = config.get('notification_enabled', False)
        self.webhook_type = config.get('notification_type', 'slack')  # 'slack' or 'discord'
        self.webhook_url = config.get('notification_webhook_url', '')
        self.topic_arn = config.get('notification_topic_arn', '')
        self.sns_client = sns_client

    def is_enabled(self) -> bool:
        """
        Check if notifications are enabled and have somewhere to go.

        Returns:
            True if notifications can be sent
        """
        has_webhook = bool(self.webhook_url) and self.webhook_type in ['slack', 'discord']
        has_topic = bool(self.topic_arn) and self.sns_client is not None
        return bool(self.enabled and (has_webhook or has_topic))

    @staticmethod
    def format_message(job, outcome) -> str:
        current_time = datetime.now().strftime("%B %d %Y - %H:%M")
        status = "succeeded" if outcome.success else f"FAILED ({outcome.reason_code.value})"
        message_parts = [
            f"Site publish {status} on {current_time}.",
            f"Site: {job.target_site}",
            f"Commit: {job.commit.short()}",
        ]
        if job.branch:
            message_parts.append(f"Branch: {job.branch}")
        if outcome.message:
            message_parts.append(outcome.message)
        return "\n".join(message_parts)

    def send_publish_notification(self, job, outcome) -> bool:
        """
        Send notification when a publish job finishes.

        Args:
            job: PublishJob that finished
            outcome: JobOutcome reported for it

        Returns:
            True if every configured channel accepted the notification
        """
        if not self.is_enabled():
            return False

        message = self.format_message(job, outcome)
        delivered = True
        if self.topic_arn and self.sns_client is not None:
            delivered = self._publish_topic(job, outcome, message) and delivered
        if self.webhook_url and self.webhook_type in ['slack', 'discord']:
            delivered = self._post_webhook(message) and delivered
        return delivered

    def _publish_topic(self, job, outcome, message) -> bool:
        status = "succeeded" if outcome.success else "failed"
        try:
            self.sns_client.publish(
                TopicArn=self.topic_arn,
                Subject=f"Publish {status}: {job.target_site}"[:100],
                Message=message,
            )
            return True
        except Exception as e:
            logger.warning("SNS notification failed: %s: %s", type(e).__name__, e)
            return False

    def _post_webhook(self, message) -> bool:
        if self.webhook_type == "discord":
            payload = {"content": message}
        else:
            payload = {"text": message}

        logger.debug("Sending %s webhook to %s", self.webhook_type, self.webhook_url)
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=10)
        except requests.RequestException as e:
            logger.warning("Notification exception: %s: %s", type(e).__name__, e)
            return False

        logger.debug("Webhook response status: %d", response.status_code)
        if not (200 <= response.status_code < 300):
            logger.warning("Webhook returned HTTP %d: %s", response.status_code, response.text)
            return False
        return True
