import smtplib

import pytest

from medicare.services.mailer import EmailSender, doctor_blocked_email, leave_decision_email


class _RecordingSMTP:
    instances: list['_RecordingSMTP'] = []

    def __init__(self, host: str, port: int, timeout: int):
        self.host = host
        self.port = port
        self.calls: list[str] = []
        _RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self, context=None):
        self.calls.append('starttls')

    def login(self, username: str, password: str):
        self.calls.append(f'login:{username}')

    def sendmail(self, from_addr: str, to_addrs: list[str], message: str):
        self.calls.append(f'sendmail:{from_addr}->{",".join(to_addrs)}')


def _sender(**overrides) -> EmailSender:
    settings = {
        'host': 'smtp.medicare.test',
        'port': 587,
        'username': 'mailer',
        'password': 'secret',
        'use_tls': True,
        'from_address': 'MediCare Plus <noreply@medicare.test>',
    }
    settings.update(overrides)
    return EmailSender(**settings)


def test_send_delivers_through_smtp(monkeypatch: pytest.MonkeyPatch) -> None:
    _RecordingSMTP.instances = []
    monkeypatch.setattr('medicare.services.mailer.smtplib.SMTP', _RecordingSMTP)

    assert _sender().send('doctor@medicare.test', 'Subject', '<p>Body</p>') is True

    assert _RecordingSMTP.instances[0].calls == [
        'starttls',
        'login:mailer',
        'sendmail:noreply@medicare.test->doctor@medicare.test',
    ]


def test_send_without_host_is_a_logged_no_op(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args, **kwargs):
        raise AssertionError('SMTP must not be contacted')

    monkeypatch.setattr('medicare.services.mailer.smtplib.SMTP', _fail)

    assert _sender(host='').send('doctor@medicare.test', 'Subject', '<p>Body</p>') is False
    assert _sender().send(None, 'Subject', '<p>Body</p>') is False


@pytest.mark.parametrize('error', [smtplib.SMTPException('rejected'), OSError('connection refused')])
def test_send_swallows_delivery_failures(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
    error: Exception,
) -> None:
    def _raise(*args, **kwargs):
        raise error

    monkeypatch.setattr('medicare.services.mailer.smtplib.SMTP', _raise)

    assert _sender().send('doctor@medicare.test', 'Subject', '<p>Body</p>') is False
    assert 'Failed to send email' in caplog.text


def test_message_builders_include_context() -> None:
    subject, html = leave_decision_email('Dr. Gregory House', False, 'June 10, 2025 to June 12, 2025', 'Short staffed')

    assert subject == 'Leave Rejected - MediCare Plus'
    assert 'Short staffed' in html
    assert 'Pending review of conduct' in doctor_blocked_email('Dr. Gregory House', 'Pending review of conduct')[1]
