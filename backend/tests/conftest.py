from pathlib import Path
from dotenv import load_dotenv
import pytest

# Load environment variables for tests before any wandernest module reads settings
load_dotenv(Path(__file__).resolve().parents[1] / '.env.test')


# Record outgoing mail for all tests instead of touching SMTP
@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Replace send_email with a recorder; returns the list of sent messages."""
    sent = []

    def _record(recipient, subject, body):
        sent.append({"to": recipient, "subject": subject, "body": body})

    monkeypatch.setattr("wandernest.utils.email.send_email", _record)
    return sent
