"""
Pytest configuration and fixtures for PrintDesk Backend tests.
"""

import itertools
import os
import tempfile
from datetime import timedelta
from decimal import Decimal
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter

# Set test environment variables before importing the app
os.environ["PRINTDESK_DB_PATH"] = os.path.join(tempfile.mkdtemp(prefix="printdesk_test_"), "app.db")
os.environ["S3_BUCKET_NAME"] = "printdesk-test-bucket"

from printdesk_backend.database import PrintDeskDatabase
from printdesk_backend.errors import StorageError
from printdesk_backend.job_manager import Attachment, PrintJobManager, PrintJobSubmission
from printdesk_backend.main import app, get_database, get_job_manager
from printdesk_backend.models import PaperType, PrintType
from printdesk_backend.pricing import PricingService
from printdesk_backend.records import ShopRecord
from printdesk_backend.utils import utcnow

PDF_MIME = "application/pdf"
PNG_MIME = "image/png"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def make_pdf(pages: int) -> bytes:
    """Build a valid PDF with the given number of blank pages."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class FakeFileStore:
    """In-memory file store that records uploads and URL issuance."""

    def __init__(self):
        self.objects = {}
        self.issued = []
        self.deleted = []
        self.fail_on = set()
        self._sequence = itertools.count(1)

    def store(self, path, data, content_type):
        if "upload" in self.fail_on:
            raise StorageError("upload", path, "simulated failure")
        self.objects[path] = (data, content_type)
        return path

    def issue_temporary_url(self, path, ttl_seconds):
        if "presign" in self.fail_on:
            raise StorageError("presign", path, "simulated failure")
        self.issued.append((path, ttl_seconds))
        return f"https://files.test/{path}?expires={ttl_seconds}&sig={next(self._sequence)}"

    def delete(self, path):
        self.objects.pop(path, None)
        self.deleted.append(path)


class RecordingBroadcaster:
    """Broadcaster that keeps every published event."""

    def __init__(self):
        self.events = []

    def publish(self, room, event, payload):
        self.events.append((room, event, payload))

    def for_room(self, room):
        return [(event, payload) for r, event, payload in self.events if r == room]


class FailingBroadcaster:
    def publish(self, room, event, payload):
        raise RuntimeError("socket transport is down")


@pytest.fixture
def database(tmp_path):
    """A fresh SQLite database per test."""
    return PrintDeskDatabase(tmp_path / "printdesk.db")


@pytest.fixture
def shop(database):
    record = ShopRecord(id="shop-1", name="Corner Copies", created_at=utcnow())
    database.insert_shop(record)
    return record


@pytest.fixture
def pricing(database):
    return PricingService(database)


@pytest.fixture
def a4_black_white(pricing, shop):
    """Shop prices A4 black & white at 2.00 single / 1.20 double sided."""
    config, _ = pricing.create_config(shop.id, PaperType.A4, PrintType.BLACK_WHITE, Decimal("2.00"), Decimal("1.20"))
    return config


@pytest.fixture
def file_store():
    return FakeFileStore()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def manager(database, file_store, broadcaster):
    job_manager = PrintJobManager(database, file_store, broadcaster, max_workers=2)
    yield job_manager
    job_manager.shutdown()


@pytest.fixture
def ten_page_pdf():
    return make_pdf(10)


@pytest.fixture
def submission_factory(shop, ten_page_pdf):
    """Build a submission for the test shop; keyword arguments override fields."""

    def build(**overrides):
        fields = {
            "shop_id": shop.id,
            "copies": 3,
            "attachments": [Attachment("thesis.pdf", PDF_MIME, ten_page_pdf)],
            "print_type": "BLACK_WHITE",
            "paper_type": "A4",
            "print_side": "SINGLE_SIDED",
            "customer_name": "Ada",
        }
        fields.update(overrides)
        return PrintJobSubmission(**fields)

    return build


@pytest.fixture
def client(database, manager):
    """Test client wired to the per-test database and job manager."""
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_job_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stale_time():
    """A timestamp older than the 12 hour staleness threshold."""
    return utcnow() - timedelta(hours=13)
