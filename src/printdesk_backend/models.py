from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PrintJobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PrintType(str, Enum):
    COLOR = "COLOR"
    BLACK_WHITE = "BLACK_WHITE"


class PaperType(str, Enum):
    A0 = "A0"
    A1 = "A1"
    A2 = "A2"
    A3 = "A3"
    A4 = "A4"
    A5 = "A5"
    LEGAL = "LEGAL"
    LETTER = "LETTER"
    TABLOID = "TABLOID"


class PrintSide(str, Enum):
    SINGLE_SIDED = "SINGLE_SIDED"
    DOUBLE_SIDED = "DOUBLE_SIDED"


class ShopCreate(BaseModel):
    name: str = Field(min_length=1)


class Shop(BaseModel):
    id: str
    name: str
    created_at: datetime


class PricingConfigFields(BaseModel):
    paper_type: PaperType
    print_type: PrintType
    single_sided: Decimal = Field(gt=0)
    double_sided: Decimal = Field(gt=0)


class PricingConfigCreate(PricingConfigFields):
    shop_id: str = Field(min_length=1)


class PricingConfig(PricingConfigFields):
    id: str
    shop_id: str
    created_at: datetime
    updated_at: datetime


class PricingConfigChange(BaseModel):
    pricing_config: PricingConfig
    all_configurations: List[PricingConfig]


class PrintJobFile(BaseModel):
    id: str
    file_name: str
    file_url: str
    file_type: str
    pages: int
    created_at: datetime


class PrintJobSummary(BaseModel):
    id: str
    shop_id: str
    token_number: str
    status: PrintJobStatus
    copies: int
    print_type: PrintType
    paper_type: PaperType
    print_side: PrintSide
    specific_pages: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    total_pages: int
    total_cost: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime


class PrintJobDetail(PrintJobSummary):
    files: List[PrintJobFile]


class StatusUpdateRequest(BaseModel):
    status: str


class _EventPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventFile(_EventPayload):
    id: str
    file_name: str
    file_url: str


class NewPrintJobEvent(_EventPayload):
    job_id: str
    token: str
    customer_name: str
    total_pages: int
    total_cost: Optional[Decimal] = None
    status: PrintJobStatus
    files: List[EventFile]
    created_at: datetime


class StatusUpdateEvent(_EventPayload):
    job_id: str
    status: PrintJobStatus
    token: str
