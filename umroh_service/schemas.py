from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
import datetime

from .models import PicType, NotificationType


class CamelModel(BaseModel):
    # The dashboard consumes the report with camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Commission report ---
class CommissionRow(CamelModel):
    booking_code: str
    package_title: str
    pic_id: int
    pic_name: str
    pic_type: PicType
    pilgrim_count: int
    commission_per_pilgrim: int
    total_commission: int


class CommissionSummary(CamelModel):
    pic_type: PicType
    pic_id: int
    pic_name: str
    total_pilgrims: int = 0
    total_commission: int = 0


class CommissionTotals(BaseModel):
    cabang: int = 0
    agen: int = 0
    karyawan: int = 0
    grand: int = 0


class CommissionReport(BaseModel):
    rows: List[CommissionRow] = []
    summaries: List[CommissionSummary] = []
    totals: CommissionTotals = Field(default_factory=CommissionTotals)


class PackageCommissionRates(BaseModel):
    """Commission per pilgrim for each PIC type of one package."""
    cabang: int = Field(default=0, ge=0)
    agen: int = Field(default=0, ge=0)
    karyawan: int = Field(default=0, ge=0)


# --- Reminder sweep ---
class ReminderSweepResult(CamelModel):
    notifications_created: int = 0


# --- Notifications ---
class NotificationRead(BaseModel):
    id: int
    user_id: int
    booking_id: Optional[int] = None
    type: NotificationType
    title: str
    message: str
    is_read: bool
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    items: List[NotificationRead]
    unread_count: int


class MarkAllReadResult(BaseModel):
    updated: int
