from campus_drive.db.session import SessionLocal
from campus_drive.services.storage_retry import TransactionRunner


def get_runner() -> TransactionRunner:
    """One runner per request; overridden in tests to point at the test engine."""
    return TransactionRunner(SessionLocal)
