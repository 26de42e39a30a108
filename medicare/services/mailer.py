"""Best-effort SMTP delivery and the message bodies sent by the workflows."""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from medicare.core import config

logger = logging.getLogger(__name__)


class EmailSender:
    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        username: str = config.SMTP_USERNAME,
        password: str = config.SMTP_PASSWORD,
        use_tls: bool = config.SMTP_USE_TLS,
        from_address: str = config.EMAIL_FROM_ADDRESS,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def send(self, to: str | None, subject: str, html: str) -> bool:
        """Send one message. Failures are logged and reported as ``False``."""
        if not to:
            logger.warning('Skipping email "%s": no recipient address', subject)
            return False
        if not self.host:
            logger.info('SMTP not configured; email "%s" to %s not sent', subject, to)
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_address
        msg['To'] = to
        msg.attach(MIMEText(html, 'html'))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.from_address.split('<')[-1].rstrip('>'), [to], msg.as_string())
        except (smtplib.SMTPException, OSError):
            logger.exception('Failed to send email "%s" to %s', subject, to)
            return False

        logger.info('Email "%s" sent to %s', subject, to)
        return True


_default_sender = EmailSender()


def get_email_sender() -> EmailSender:
    return _default_sender


def appointment_confirmation_email(patient_name: str, doctor_name: str, when: str) -> tuple[str, str]:
    return (
        'Appointment Booked - MediCare Plus',
        f"""
        <h2>Appointment Booked</h2>
        <p>Dear {patient_name},</p>
        <p>Your appointment with {doctor_name} is booked for {when}.</p>
        <p>Best regards,<br>MediCare Plus Team</p>
        """,
    )


def leave_decision_email(doctor_name: str, approved: bool, period: str, reason: str | None = None) -> tuple[str, str]:
    if approved:
        return (
            'Leave Approved - MediCare Plus',
            f"""
            <h2>Leave Approved</h2>
            <p>Dear {doctor_name},</p>
            <p>Your leave request for {period} has been approved.</p>
            <p>Appointments booked during this period have been cancelled and patients have been notified.</p>
            <p>Best regards,<br>MediCare Plus Team</p>
            """,
        )
    return (
        'Leave Rejected - MediCare Plus',
        f"""
        <h2>Leave Rejected</h2>
        <p>Dear {doctor_name},</p>
        <p>Your leave request for {period} has been rejected.</p>
        <p><strong>Reason:</strong> {reason}</p>
        <p>Best regards,<br>MediCare Plus Team</p>
        """,
    )


def doctor_blocked_email(doctor_name: str, reason: str) -> tuple[str, str]:
    return (
        'Account Blocked - MediCare Plus',
        f"""
        <h2>Account Blocked</h2>
        <p>Dear {doctor_name},</p>
        <p>Your account has been temporarily blocked by the administration.</p>
        <p><strong>Reason:</strong> {reason}</p>
        <p>All your future appointments have been cancelled and patients have been notified.</p>
        <p>Please contact the administrator for more information.</p>
        <p>Best regards,<br>MediCare Plus Team</p>
        """,
    )


def doctor_unblocked_email(doctor_name: str) -> tuple[str, str]:
    return (
        'Account Unblocked - MediCare Plus',
        f"""
        <h2>Account Unblocked</h2>
        <p>Dear {doctor_name},</p>
        <p>Your account has been unblocked by the administration.</p>
        <p>You can now log in and accept new appointments.</p>
        <p>Best regards,<br>MediCare Plus Team</p>
        """,
    )
