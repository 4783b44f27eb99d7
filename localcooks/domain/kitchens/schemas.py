"""Kitchen domain schemas - Kitchens and their add-on listings"""

from typing import Optional

from pydantic import BaseModel, Field

STORAGE_TYPES = ("dry", "cold", "freezer")


class KitchenCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    hourlyRate: Optional[int] = Field(None, ge=0, description="Cents per hour")
    currency: str = "CAD"
    minimumBookingHours: int = Field(1, ge=1)
    taxRatePercent: Optional[float] = Field(None, ge=0, le=100)
    isActive: bool = True


class KitchenUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    hourlyRate: Optional[int] = Field(None, ge=0)
    minimumBookingHours: Optional[int] = Field(None, ge=1)
    taxRatePercent: Optional[float] = Field(None, ge=0, le=100)
    isActive: Optional[bool] = None


class KitchenResponse(BaseModel):
    id: int
    locationId: int
    name: str
    description: Optional[str] = None
    hourlyRate: Optional[int] = None
    currency: str
    minimumBookingHours: int
    taxRatePercent: Optional[float] = None
    isActive: bool


class StorageListingCreate(BaseModel):
    name: str = Field(..., min_length=1)
    storageType: str = "dry"
    description: Optional[str] = None
    basePrice: int = Field(..., ge=0, description="Cents per day")
    minimumBookingDuration: int = Field(1, ge=1)


class StorageListingResponse(BaseModel):
    id: int
    kitchenId: int
    name: str
    storageType: str
    description: Optional[str] = None
    basePrice: int
    minimumBookingDuration: int
    isActive: bool


class EquipmentListingCreate(BaseModel):
    equipmentType: str = Field(..., min_length=1)
    brand: Optional[str] = None
    description: Optional[str] = None
    sessionRate: int = Field(..., ge=0, description="Cents per booking session")
    damageDeposit: int = Field(0, ge=0)


class EquipmentListingResponse(BaseModel):
    id: int
    kitchenId: int
    equipmentType: str
    brand: Optional[str] = None
    description: Optional[str] = None
    sessionRate: int
    damageDeposit: int
    isActive: bool
