"""
Typed internal records for shops, pricing rows, print jobs and their files.

The database layer returns these dataclasses and the service layer passes
them around; they are converted to pydantic models only at the API and
event boundaries via the ``to_*`` helpers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .models import (
    EventFile,
    NewPrintJobEvent,
    PaperType,
    PricingConfig,
    PrintJobDetail,
    PrintJobFile,
    PrintJobStatus,
    PrintJobSummary,
    PrintSide,
    PrintType,
    Shop,
    StatusUpdateEvent,
)


@dataclass
class ShopRecord:
    id: str
    name: str
    created_at: datetime

    def to_model(self) -> Shop:
        return Shop(id=self.id, name=self.name, created_at=self.created_at)


@dataclass
class PricingConfigRecord:
    """
    One price point for a (shop, paper type, print type) triple.

    Attributes:
        single_sided: Unit price per page for single-sided printing
        double_sided: Unit price per page for double-sided printing
    """

    id: str
    shop_id: str
    paper_type: PaperType
    print_type: PrintType
    single_sided: Decimal
    double_sided: Decimal
    created_at: datetime
    updated_at: datetime

    def unit_price(self, print_side: PrintSide) -> Decimal:
        return self.double_sided if print_side == PrintSide.DOUBLE_SIDED else self.single_sided

    def to_model(self) -> PricingConfig:
        return PricingConfig(
            id=self.id,
            shop_id=self.shop_id,
            paper_type=self.paper_type,
            print_type=self.print_type,
            single_sided=self.single_sided,
            double_sided=self.double_sided,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class PrintJobFileRecord:
    """
    One uploaded attachment of a print job.

    Attributes:
        storage_path: Object key of the attachment in the file store
        file_url: Time-limited retrieval URL issued for storage_path
        url_issued_at: When file_url was issued; drives staleness checks
    """

    id: str
    print_job_id: str
    file_name: str
    storage_path: str
    file_url: str
    url_issued_at: datetime
    file_type: str
    pages: int
    created_at: datetime
    updated_at: datetime

    def is_stale(self, now: datetime, stale_after_seconds: int) -> bool:
        if not self.file_url:
            return True
        return (now - self.url_issued_at).total_seconds() > stale_after_seconds

    def to_model(self) -> PrintJobFile:
        return PrintJobFile(
            id=self.id,
            file_name=self.file_name,
            file_url=self.file_url,
            file_type=self.file_type,
            pages=self.pages,
            created_at=self.created_at,
        )


@dataclass
class PrintJobRecord:
    """
    Internal representation of a print job.

    ``total_cost`` is None until the pricing step has run; it is only ever
    written from the pricing formula, never set directly by callers.
    """

    id: str
    shop_id: str
    token_number: str
    copies: int
    print_type: PrintType
    paper_type: PaperType
    print_side: PrintSide
    total_pages: int
    status: PrintJobStatus
    created_at: datetime
    updated_at: datetime
    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    specific_pages: str = ""
    total_cost: Optional[Decimal] = None
    files: List[PrintJobFileRecord] = field(default_factory=list)

    def to_summary(self) -> PrintJobSummary:
        return PrintJobSummary(
            id=self.id,
            shop_id=self.shop_id,
            token_number=self.token_number,
            status=self.status,
            copies=self.copies,
            print_type=self.print_type,
            paper_type=self.paper_type,
            print_side=self.print_side,
            specific_pages=self.specific_pages,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            customer_email=self.customer_email,
            total_pages=self.total_pages,
            total_cost=self.total_cost,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_detail(self) -> PrintJobDetail:
        summary = self.to_summary()
        return PrintJobDetail(
            **summary.model_dump(),
            files=[file.to_model() for file in self.files],
        )

    def to_new_job_event(self) -> NewPrintJobEvent:
        return NewPrintJobEvent(
            job_id=self.id,
            token=self.token_number,
            customer_name=self.customer_name or "Anonymous",
            total_pages=self.total_pages,
            total_cost=self.total_cost,
            status=self.status,
            files=[EventFile(id=f.id, file_name=f.file_name, file_url=f.file_url) for f in self.files],
            created_at=self.created_at,
        )

    def to_status_event(self) -> StatusUpdateEvent:
        return StatusUpdateEvent(job_id=self.id, status=self.status, token=self.token_number)
