"""
Print job lifecycle management.

This module manages the end-to-end lifecycle of customer print jobs:
- Intake: validation, page counting, pricing, attachment upload
- Status transitions along PENDING -> PROCESSING -> COMPLETED / CANCELLED
- Time-limited file references: issuance, wind-down on completion and lazy
  renewal of stale references on read
- Live notifications to the shop's dashboard room and the job's tracking room

The PrintJobManager class coordinates the pricing service, the page counter,
the file store and the broadcaster. It holds no per-request state; all job
state lives in the database, so concurrent requests only contend there.

Intake is not atomic: the job row is written before its cost and files, and
a failure after that point leaves the row in place (PENDING, possibly
without cost or with a partial file list). No compensating cleanup is
attempted.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Type, TypeVar
from uuid import uuid4

from omegaconf import DictConfig

from .database import PrintDeskDatabase
from .errors import ConfigurationNotFound, InvalidTransition, NotFound, NotInitialized, UnsupportedMediaType, ValidationError
from .models import PaperType, PrintJobDetail, PrintJobStatus, PrintJobSummary, PrintSide, PrintType
from .notifications import NEW_PRINT_JOB_EVENT, STATUS_UPDATE_EVENT, Broadcaster, print_job_room, shop_room
from .page_counter import count_pages
from .pricing import PricingService
from .records import PrintJobFileRecord, PrintJobRecord
from .s3_service import FileStore
from .utils import generate_token_number, sanitize_filename, utcnow

logger = logging.getLogger(__name__)

ACCEPTED_MIME_TYPES: FrozenSet[str] = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "image/jpeg",
        "image/png",
    }
)

ALLOWED_TRANSITIONS: Dict[PrintJobStatus, FrozenSet[PrintJobStatus]] = {
    PrintJobStatus.PENDING: frozenset({PrintJobStatus.PROCESSING, PrintJobStatus.CANCELLED}),
    PrintJobStatus.PROCESSING: frozenset({PrintJobStatus.COMPLETED, PrintJobStatus.CANCELLED}),
    PrintJobStatus.COMPLETED: frozenset(),
    PrintJobStatus.CANCELLED: frozenset(),
}

E = TypeVar("E", PrintType, PaperType, PrintSide, PrintJobStatus)


@dataclass
class Attachment:
    """One uploaded file as received from the client."""

    file_name: str
    content_type: str
    data: bytes


@dataclass
class PrintJobSubmission:
    """
    Raw intake request.

    Enum fields and ``copies`` arrive as client-supplied values and are
    parsed during validation; omitted media fields fall back to A4,
    BLACK_WHITE and SINGLE_SIDED.
    """

    shop_id: str
    copies: Any
    attachments: List[Attachment] = field(default_factory=list)
    print_type: Optional[str] = None
    paper_type: Optional[str] = None
    print_side: Optional[str] = None
    specific_pages: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""


@dataclass
class ValidatedSubmission:
    shop_id: str
    copies: int
    print_type: PrintType
    paper_type: PaperType
    print_side: PrintSide
    attachments: List[Attachment]
    specific_pages: str
    customer_name: str
    customer_phone: str
    customer_email: str


def _parse_enum(enum_type: Type[E], value: Any, field_name: str, default: Optional[E] = None) -> E:
    if value is None or value == "":
        if default is None:
            raise ValidationError(field_name)
        return default
    try:
        return enum_type(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValidationError(field_name, f"Invalid value for '{field_name}': {value}. Must be one of: {allowed}") from exc


def _coerce_copies(value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise ValidationError("copies", "'copies' is required")
    try:
        copies = int(str(value).strip())
    except ValueError as exc:
        raise ValidationError("copies", f"'copies' must be a positive integer, got {value!r}") from exc
    if copies <= 0:
        raise ValidationError("copies", f"'copies' must be a positive integer, got {value!r}")
    return copies


def validate_submission(submission: PrintJobSubmission, max_file_bytes: Optional[int] = None) -> ValidatedSubmission:
    """
    Validate an intake request without touching storage.

    Field checks run before the MIME check, and every attachment is checked
    before anything is accepted, so a single bad file rejects the whole
    submission.

    Raises:
        ValidationError: For a missing or malformed field
        UnsupportedMediaType: For any attachment outside the accepted types
    """
    shop_id = (submission.shop_id or "").strip()
    if not shop_id:
        raise ValidationError("shop_id", "'shop_id' is required")
    copies = _coerce_copies(submission.copies)
    if not submission.attachments:
        raise ValidationError("files", "At least one file is required")

    print_type = _parse_enum(PrintType, submission.print_type, "print_type", PrintType.BLACK_WHITE)
    paper_type = _parse_enum(PaperType, submission.paper_type, "paper_type", PaperType.A4)
    print_side = _parse_enum(PrintSide, submission.print_side, "print_side", PrintSide.SINGLE_SIDED)

    for attachment in submission.attachments:
        if attachment.content_type not in ACCEPTED_MIME_TYPES:
            raise UnsupportedMediaType(attachment.content_type)
        if max_file_bytes is not None and len(attachment.data) > max_file_bytes:
            raise ValidationError("files", f"File {attachment.file_name} exceeds the {max_file_bytes} byte limit")

    return ValidatedSubmission(
        shop_id=shop_id,
        copies=copies,
        print_type=print_type,
        paper_type=paper_type,
        print_side=print_side,
        attachments=list(submission.attachments),
        specific_pages=submission.specific_pages or "",
        customer_name=submission.customer_name or "",
        customer_phone=submission.customer_phone or "",
        customer_email=submission.customer_email or "",
    )


def check_transition(current: PrintJobStatus, requested: PrintJobStatus) -> None:
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, requested.value)


class PrintJobManager:
    """
    Central coordinator for print job lifecycle management.

    Args:
        database: Persistence and shop directory
        file_store: Blob store for attachments
        broadcaster: Room-scoped publisher for live updates (required)
        pricing: Pricing service (built over ``database`` if omitted)
        url_ttl_seconds: Lifetime of issued and renewed file URLs
        completion_url_ttl_seconds: Lifetime of URLs reissued on completion
        stale_after_seconds: Age after which a file URL is renewed on read
        max_file_bytes: Per-attachment size limit, None for no limit
        max_workers: Threads used to reissue file URLs in parallel

    Raises:
        NotInitialized: If no broadcaster is supplied
    """

    def __init__(
        self,
        database: PrintDeskDatabase,
        file_store: FileStore,
        broadcaster: Optional[Broadcaster],
        pricing: Optional[PricingService] = None,
        *,
        url_ttl_seconds: int = 60 * 60 * 24,
        completion_url_ttl_seconds: int = 60 * 5,
        stale_after_seconds: int = 60 * 60 * 12,
        max_file_bytes: Optional[int] = 10 * 1024 * 1024,
        max_workers: int = 4,
    ) -> None:
        if broadcaster is None:
            raise NotInitialized("Notification broadcaster")
        self.database = database
        self.file_store = file_store
        self.broadcaster = broadcaster
        self.pricing = pricing or PricingService(database)
        self.url_ttl_seconds = url_ttl_seconds
        self.completion_url_ttl_seconds = completion_url_ttl_seconds
        self.stale_after_seconds = stale_after_seconds
        self.max_file_bytes = max_file_bytes
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="printdesk-urls")

    @classmethod
    def from_settings(
        cls,
        settings: DictConfig,
        database: PrintDeskDatabase,
        file_store: FileStore,
        broadcaster: Optional[Broadcaster],
    ) -> "PrintJobManager":
        return cls(
            database,
            file_store,
            broadcaster,
            url_ttl_seconds=int(settings.storage.url_ttl_seconds),
            completion_url_ttl_seconds=int(settings.storage.completion_url_ttl_seconds),
            stale_after_seconds=int(settings.storage.stale_after_seconds),
            max_file_bytes=settings.intake.max_file_bytes,
            max_workers=int(settings.engine.max_workers),
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def submit(self, submission: PrintJobSubmission) -> PrintJobDetail:
        """
        Accept a print job submission.

        This method:
        1. Validates fields and attachment types (nothing persisted on failure)
        2. Checks the shop exists
        3. Generates a token number and counts pages per attachment
        4. Persists the job in PENDING state without cost
        5. Resolves and persists the cost
        6. Uploads each attachment, issues a temporary URL, persists the file row
        7. Notifies the shop's room

        Args:
            submission: The raw intake request

        Returns:
            PrintJobDetail including cost and files

        Raises:
            ValidationError: Missing/malformed field
            UnsupportedMediaType: Rejected attachment type
            NotFound: Unknown shop
            ConfigurationNotFound: No price for the medium; the job row stays
                in PENDING without cost
            StorageError: Upload or URL issuance failed after the job row exists
        """
        validated = validate_submission(submission, self.max_file_bytes)

        if self.database.get_shop(validated.shop_id) is None:
            raise NotFound("Shop", validated.shop_id)

        page_counts = [count_pages(a.data, a.content_type) for a in validated.attachments]
        total_pages = sum(page_counts)

        now = utcnow()
        job = PrintJobRecord(
            id=uuid4().hex,
            shop_id=validated.shop_id,
            token_number=generate_token_number(),
            copies=validated.copies,
            print_type=validated.print_type,
            paper_type=validated.paper_type,
            print_side=validated.print_side,
            total_pages=total_pages,
            status=PrintJobStatus.PENDING,
            created_at=now,
            updated_at=now,
            customer_name=validated.customer_name,
            customer_phone=validated.customer_phone,
            customer_email=validated.customer_email,
            specific_pages=validated.specific_pages,
        )
        self.database.insert_job(job)
        logger.info(f"Registered print job {job.id} ({job.token_number}) for shop {job.shop_id}: {total_pages} pages")

        try:
            total_cost = self.pricing.resolve_cost(
                job.shop_id, job.paper_type, job.print_type, job.print_side, job.total_pages, job.copies
            )
        except ConfigurationNotFound:
            logger.warning(f"Print job {job.id} left without cost: no pricing for {job.paper_type.value}/{job.print_type.value}")
            raise
        job.total_cost = total_cost
        job.updated_at = self.database.update_job_cost(job.id, total_cost)

        for position, (attachment, pages) in enumerate(zip(validated.attachments, page_counts), start=1):
            job.files.append(self._store_attachment(job, position, attachment, pages))

        self._notify(shop_room(job.shop_id), NEW_PRINT_JOB_EVENT, job.to_new_job_event().model_dump(mode="json", by_alias=True))
        return job.to_detail()

    def _store_attachment(self, job: PrintJobRecord, position: int, attachment: Attachment, pages: int) -> PrintJobFileRecord:
        storage_path = f"shops/{job.shop_id}/{job.id}_{position}_{sanitize_filename(attachment.file_name)}"
        self.file_store.store(storage_path, attachment.data, attachment.content_type)
        file_url = self.file_store.issue_temporary_url(storage_path, self.url_ttl_seconds)

        now = utcnow()
        record = PrintJobFileRecord(
            id=uuid4().hex,
            print_job_id=job.id,
            file_name=attachment.file_name,
            storage_path=storage_path,
            file_url=file_url,
            url_issued_at=now,
            file_type=attachment.content_type,
            pages=pages,
            created_at=now,
            updated_at=now,
        )
        self.database.insert_file(record)
        return record

    def update_status(self, job_id: str, status: Any) -> PrintJobDetail:
        """
        Move a job to a new lifecycle status.

        Completing a job winds down access to its attachments: every file
        gets a replacement URL with the short completion lifetime.

        Raises:
            NotFound: Unknown job
            ValidationError: Status is not a defined value
            InvalidTransition: Move not allowed from the current status
            StorageError: URL reissue failed; the status is left unchanged
        """
        job = self.database.get_job(job_id)
        if job is None:
            raise NotFound("Print job", job_id)

        requested = _parse_enum(PrintJobStatus, status, "status")
        check_transition(job.status, requested)

        if requested == PrintJobStatus.COMPLETED:
            self._reissue_urls(job.files, self.completion_url_ttl_seconds)

        updated_at = self.database.update_job_status(job.id, requested, expected=job.status)
        if updated_at is None:
            # Another request moved the job after it was loaded.
            current = self.database.get_job(job.id, include_files=False)
            actual = current.status if current is not None else job.status
            logger.warning(f"Print job {job.id} changed to {actual.value} while moving to {requested.value}")
            raise InvalidTransition(actual.value, requested.value)
        job.updated_at = updated_at
        job.status = requested
        logger.info(f"Print job {job.id} moved to {requested.value}")

        payload = job.to_status_event().model_dump(mode="json", by_alias=True)
        self._notify(shop_room(job.shop_id), STATUS_UPDATE_EVENT, payload)
        self._notify(print_job_room(job.id), STATUS_UPDATE_EVENT, payload)
        return job.to_detail()

    def list_jobs(self, shop_id: str, status: Optional[Any] = None) -> List[PrintJobDetail]:
        """
        List a shop's jobs newest-first, renewing stale file URLs.

        Args:
            shop_id: Owning shop
            status: Optional status filter (must be a defined value)
        """
        status_filter = _parse_enum(PrintJobStatus, status, "status") if status not in (None, "") else None
        if self.database.get_shop(shop_id) is None:
            raise NotFound("Shop", shop_id)
        jobs = self.database.list_jobs(shop_id, status_filter)
        self._renew_stale_urls(jobs)
        return [job.to_detail() for job in jobs]

    def get_job(self, job_id: str) -> PrintJobDetail:
        job = self.database.get_job(job_id)
        if job is None:
            raise NotFound("Print job", job_id)
        self._renew_stale_urls([job])
        return job.to_detail()

    def get_job_by_token(self, token_number: str) -> PrintJobSummary:
        job = self.database.get_job_by_token(token_number)
        if job is None:
            raise NotFound("Print job", token_number)
        return job.to_summary()

    def _renew_stale_urls(self, jobs: Iterable[PrintJobRecord]) -> None:
        # Completed jobs stay wound down: their renewals keep the short lifetime.
        now = utcnow()
        by_ttl: Dict[int, List[PrintJobFileRecord]] = {}
        for job in jobs:
            ttl = self.completion_url_ttl_seconds if job.status == PrintJobStatus.COMPLETED else self.url_ttl_seconds
            stale = [file for file in job.files if file.is_stale(now, self.stale_after_seconds)]
            if stale:
                by_ttl.setdefault(ttl, []).extend(stale)
        for ttl, stale in by_ttl.items():
            logger.info(f"Renewing {len(stale)} stale file reference(s) for {ttl}s")
            self._reissue_urls(stale, ttl)

    def _reissue_urls(self, files: List[PrintJobFileRecord], ttl_seconds: int) -> None:
        # Files are independent; the first failure propagates.
        list(self._executor.map(lambda file: self._reissue_url(file, ttl_seconds), files))

    def _reissue_url(self, file: PrintJobFileRecord, ttl_seconds: int) -> None:
        file_url = self.file_store.issue_temporary_url(file.storage_path, ttl_seconds)
        issued_at = utcnow()
        self.database.update_file_url(file.id, file_url, issued_at)
        file.file_url = file_url
        file.url_issued_at = issued_at
        file.updated_at = issued_at

    def _notify(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        try:
            self.broadcaster.publish(room, event, payload)
        except Exception:  # noqa: BLE001
            logger.exception(f"Failed to publish {event} to {room}")
