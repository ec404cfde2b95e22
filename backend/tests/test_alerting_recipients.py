import asyncio

from hivewatch import alerting


class _DummyServer:
    def __init__(self):
        self.sent_messages = []
        self.closed = False

    def send_message(self, message):
        self.sent_messages.append(message)

    def quit(self):
        self.closed = True


def _smtp_settings(to_addrs=("admin@example.com",)):
    return alerting.SMTPSettings(
        host="smtp.example.com",
        port=25,
        use_ssl=False,
        use_starttls=False,
        user="",
        password="",
        from_addr="noreply@example.com",
        to_addrs=list(to_addrs),
        timeout=10,
        debug=False,
    )


def _alert(**kwargs):
    defaults = dict(
        tag="temperature-high",
        type="temperature",
        title="HIVE-001 - High temperature",
        body="Temperature 38°C is above the maximum (36°C)",
    )
    defaults.update(kwargs)
    return alerting.Alert(**defaults)


def test_send_all_prefers_hive_owner(monkeypatch):
    server = _DummyServer()
    monkeypatch.setattr(alerting, "_open_smtp_connection", lambda settings: server)

    sent = alerting._send_all([_alert()], _smtp_settings(), ["owner@example.com"])

    assert sent == 1
    message = server.sent_messages[0]
    assert message["To"] == "owner@example.com"
    assert message["Subject"] == "Alert: HIVE-001 - High temperature"
    assert server.closed is True


def test_send_all_falls_back_to_default_recipients(monkeypatch):
    server = _DummyServer()
    monkeypatch.setattr(alerting, "_open_smtp_connection", lambda settings: server)

    alerting._send_all([_alert(), _alert(tag="battery-low", type="battery")], _smtp_settings(), None)

    assert [m["To"] for m in server.sent_messages] == ["admin@example.com", "admin@example.com"]


def test_send_all_skips_without_recipients(monkeypatch):
    def _fail(settings):
        raise AssertionError("should not connect")

    monkeypatch.setattr(alerting, "_open_smtp_connection", _fail)

    assert alerting._send_all([_alert()], _smtp_settings(to_addrs=()), ["  "]) == 0


def test_connection_failure_is_logged_not_raised(monkeypatch, caplog):
    def _refuse(settings):
        raise ConnectionRefusedError("no smtp")

    monkeypatch.setattr(alerting, "_open_smtp_connection", _refuse)

    assert alerting._send_all([_alert()], _smtp_settings(), None) == 0
    assert "Failed to open SMTP connection" in caplog.text


def test_load_smtp_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "mail.example.com")
    monkeypatch.setenv("SMTP_PORT", "465")
    monkeypatch.setenv("SMTP_USE_SSL", "yes")
    monkeypatch.setenv("SMTP_TO", "a@example.com, b@example.com,")

    settings = alerting.load_smtp_settings()

    assert settings.host == "mail.example.com"
    assert settings.port == 465
    assert settings.use_ssl is True
    assert settings.to_addrs == ["a@example.com", "b@example.com"]


def test_dispatch_alerts_runs_in_executor(monkeypatch):
    calls = []

    def fake_send_all(alerts, settings, recipients):
        calls.append((list(alerts), recipients))
        return len(alerts)

    monkeypatch.setattr(alerting, "_send_all", fake_send_all)

    assert asyncio.run(alerting.dispatch_alerts([_alert()], ["owner@example.com"])) == 1
    assert asyncio.run(alerting.dispatch_alerts([])) == 0
    assert len(calls) == 1
