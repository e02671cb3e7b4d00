"""Mail sending: endpoint parsing, SMTP transport and the send-mail handler."""

from .endpoint import MailServerEndpoint
from .handler import MAIL_SENT_EVENT, SEND_MAIL_COMMAND, MailSendHandler
from .transport import MailSession, MailTransport, SmtpSession, SmtpTransport

__all__ = [
    "MAIL_SENT_EVENT",
    "SEND_MAIL_COMMAND",
    "MailSendHandler",
    "MailServerEndpoint",
    "MailSession",
    "MailTransport",
    "SmtpSession",
    "SmtpTransport",
]
