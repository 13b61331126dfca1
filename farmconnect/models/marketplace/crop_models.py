from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from farmconnect.models.marketplace.common import Location


class CropStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    # stock depleted by buyer orders
    SOLD = "sold"
    # farmer confirmed an order; listing withdrawn, deletion pending
    SOLD_OUT = "sold_out"
    DELETED = "deleted"


ORDERABLE_CROP_STATUSES = (CropStatus.AVAILABLE.value, CropStatus.RESERVED.value)

# float stock drifts under repeated $inc (0.3 - 0.1 - 0.1 != 0.1); anything
# within this of a target counts as equal
QUANTITY_EPSILON = 1e-6


class CropListing(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: Optional[str] = None
    farmerId: str = Field(..., min_length=1)
    farmerName: str = Field(..., min_length=1)
    cropName: str = Field(..., min_length=1)
    variety: Optional[str] = None

    quantity: float = Field(0, ge=0)
    unit: str = "kg"
    pricePerUnit: float = Field(..., gt=0)
    isOrganic: bool = False

    harvestDate: Optional[datetime] = None
    expiryDate: Optional[datetime] = None
    location: Location = Field(default_factory=Location)
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    certifications: List[str] = Field(default_factory=list)

    status: CropStatus = CropStatus.AVAILABLE
    soldOutAt: Optional[datetime] = None
    soldToOrderId: Optional[str] = None
    # persisted run-after time for the deferred deletion sweep
    deleteAfter: Optional[datetime] = None
    deletedAt: Optional[datetime] = None

    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _round_quantity(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return round(v, 6)
        return v

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CropListing":
        return cls.model_validate(record)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})

    @property
    def is_orderable(self) -> bool:
        return self.status in ORDERABLE_CROP_STATUSES
