"""Outgoing email for the billing workflow, sent through Flask-Mail."""

import smtplib
from collections import namedtuple

from flask import current_app
from flask_mail import BadHeaderError, Mail, Message

from config import get_logger

logger = get_logger(__name__)

mail = Mail()

OutgoingEmail = namedtuple('OutgoingEmail', ['to', 'subject', 'body', 'html'])
OutgoingEmail.__new__.__defaults__ = (False,)


class MailGateway:
    """
    Sends a batch of emails over a single SMTP connection.

    Delivery is best effort: a message that fails is logged and reported as
    ``False`` in the returned list, and the rest of the batch still goes out.
    """

    def __init__(self, mail, sender_name, sender_address):
        self.mail = mail
        self.sender = (sender_name, sender_address)

    def _message(self, email: OutgoingEmail) -> Message:
        msg = Message(subject=email.subject, recipients=[email.to], sender=self.sender)
        if email.html:
            msg.html = email.body
        else:
            msg.body = email.body
        return msg

    def send_batch(self, emails) -> list:
        emails = list(emails)
        results = []
        try:
            with self.mail.connect() as conn:
                for email in emails:
                    try:
                        conn.send(self._message(email))
                        results.append(True)
                    except (BadHeaderError, smtplib.SMTPException, OSError) as e:
                        logger.warning(f"Failed to send '{email.subject}' to {email.to}: {e}")
                        results.append(False)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Mail gateway unavailable, {len(emails) - len(results)} email(s) not sent: {e}")
            results.extend([False] * (len(emails) - len(results)))
        logger.info(f"Mail batch dispatched: {results.count(True)}/{len(emails)} sent")
        return results


def init_mail(app):
    mail.init_app(app)
    app.extensions['mail_gateway'] = MailGateway(
        mail,
        app.config['MAIL_SENDER_NAME'],
        app.config['MAIL_DEFAULT_SENDER'],
    )


def get_mail_gateway():
    """The gateway configured for the running application."""
    return current_app.extensions['mail_gateway']
