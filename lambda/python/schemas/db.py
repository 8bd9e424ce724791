from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from common.errors import ValidationFailure

REQUEST_STATUSES = ('pending', 'assigned', 'in_progress', 'completed', 'cancelled')
REQUEST_TYPES = ('car inspection', 'car valuation')
INSPECTION_STATUSES = ('draft', 'completed', 'submitted')

INSPECTION_TYPES = (
    'Exterior',
    'Light Conditions and Operations',
    'Interior',
    'Engine',
    'Transmission and Drivetrain',
    'Chasis',
    'Tyre and Breaks',
    'Overall Safety Feature',
    'Entertainment',
    'Drive and Passenger Experience',
)
VIDEO_ALLOWED_TYPES = ('Interior', 'Exterior')

CHECKLIST_STATUSES = ('Excellent', 'Good', 'Average', 'Fair', 'Poor', 'Not Checked', 'Not Applicable')

_EMAIL_RE = re.compile(r'^\S+@\S+\.\S+$')


# Small helper to normalize snake_case -> camelCase keys (for compatibility)
def to_camel_case_keys(d: dict) -> dict:
    out = {}
    for k, v in d.items():
        parts = k.split('_')
        if len(parts) == 1:
            out[k] = v
            continue
        camel = parts[0] + ''.join(p.capitalize() for p in parts[1:])
        if camel not in d:
            out[camel] = v
    return out


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


def _year_ceiling():
    return datetime.now().year + 1


class VehicleInfoPatch(_Model):
    make: Optional[str] = Field(None, max_length=50)
    model: Optional[str] = Field(None, max_length=50)
    year: Optional[int] = Field(None, ge=1900)
    vin: Optional[str] = Field(None, max_length=17)
    licensePlate: Optional[str] = Field(None, max_length=20)
    mileage: Optional[float] = Field(None, ge=0)
    color: Optional[str] = Field(None, max_length=30)

    @field_validator('year')
    @classmethod
    def _year_not_future(cls, v):
        if v is not None and v > _year_ceiling():
            raise ValueError('Year cannot be in the future')
        return v

    @field_validator('vin', 'licensePlate')
    @classmethod
    def _upper(cls, v):
        return v.upper() if v else v


class VehicleInfo(VehicleInfoPatch):
    make: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1900)
    mileage: Optional[float] = Field(0, ge=0)


class Location(_Model):
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)
    zipCode: Optional[str] = Field(None, max_length=10)


class CreateRequestPayload(_Model):
    email: str = Field(..., max_length=254)
    firstName: Optional[str] = Field(None, min_length=2, max_length=50)
    lastName: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    requestType: Literal[REQUEST_TYPES] = 'car inspection'
    vehicleInfo: VehicleInfo
    preferredDate: Optional[Union[datetime, date]] = None
    preferredTime: Optional[str] = Field(None, max_length=20)
    location: Optional[Location] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('email')
    @classmethod
    def _email(cls, v):
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError('Please provide a valid email address')
        return v


class UpdateRequestPayload(_Model):
    requestType: Optional[Literal[REQUEST_TYPES]] = None
    vehicleInfo: Optional[VehicleInfoPatch] = None
    preferredDate: Optional[Union[datetime, date]] = None
    preferredTime: Optional[str] = Field(None, max_length=20)
    location: Optional[Location] = None
    notes: Optional[str] = Field(None, max_length=1000)
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode='after')
    def _at_least_one(self):
        if not self.model_fields_set:
            raise ValueError('At least one field must be provided for update')
        return self


class AssignInspectorPayload(_Model):
    inspectorId: str = Field(..., min_length=1)


class RejectPayload(_Model):
    reason: Optional[str] = Field(None, max_length=500)


class ListRequestsParams(_Model):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    status: Optional[Literal[REQUEST_STATUSES]] = None
    sortBy: Literal['id', 'createdAt', 'preferredDate', 'status'] = 'createdAt'
    sortOrder: Literal['ASC', 'DESC'] = 'DESC'

    @field_validator('sortOrder', mode='before')
    @classmethod
    def _upper_order(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('status', mode='before')
    @classmethod
    def _blank_status(cls, v):
        return v or None


class ListInspectorsParams(_Model):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)
    availableStatus: Optional[str] = Field(None, max_length=50)


class ChecklistItemResponse(_Model):
    position: int = Field(..., ge=1)
    label: str = Field(..., min_length=1)
    status: Literal[CHECKLIST_STATUSES]
    # range is enforced by clamping in the rating engine, not rejected here
    rating: Optional[float] = None
    remarks: Optional[str] = Field(None, max_length=1000)
    photos: List[str] = Field(default_factory=list, max_length=20)


class TypeInspection(_Model):
    typeName: Literal[INSPECTION_TYPES]
    checklistItems: List[ChecklistItemResponse] = Field(..., min_length=1)
    overallRemarks: Optional[str] = Field(None, max_length=2000)
    overallPhotos: List[str] = Field(default_factory=list, max_length=30)
    videos: List[str] = Field(default_factory=list, max_length=2)
    averageRating: Optional[float] = None


class _InspectionBody(_Model):
    vehicleInfo: Optional[VehicleInfoPatch] = None
    notes: Optional[str] = Field(None, max_length=5000)
    # opaque detail blobs, stored as given
    vehicleDetails: Optional[Dict[str, Any]] = None
    serviceWarrantyOverview: Optional[Dict[str, Any]] = None
    interiorDetails: Optional[Dict[str, Any]] = None
    exteriorDetails: Optional[Dict[str, Any]] = None
    damagedCoordinates: Optional[Any] = None


class CreateInspectionPayload(_InspectionBody):
    templateId: str = Field(..., alias='checklistTemplateId', min_length=1)
    inspectionRequestId: Optional[str] = None
    types: List[TypeInspection] = Field(..., min_length=1)
    status: Literal[INSPECTION_STATUSES] = 'draft'
    inspectionDate: Optional[Union[datetime, date]] = None
    overallRating: Optional[float] = None


class UpdateInspectionPayload(_InspectionBody):
    types: Optional[List[TypeInspection]] = Field(None, min_length=1)
    status: Optional[Literal[INSPECTION_STATUSES]] = None

    @model_validator(mode='after')
    def _at_least_one(self):
        if not self.model_fields_set:
            raise ValueError('At least one field must be provided for update')
        return self


class ListInspectionsParams(_Model):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    status: Optional[Literal[INSPECTION_STATUSES]] = None
    templateId: Optional[str] = None
    sortBy: Literal['id', 'inspectionDate', 'createdAt', 'overallRating'] = 'inspectionDate'
    sortOrder: Literal['ASC', 'DESC'] = 'DESC'

    @field_validator('sortOrder', mode='before')
    @classmethod
    def _upper_order(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('status', 'templateId', mode='before')
    @classmethod
    def _blank_filter(cls, v):
        return v or None


class TemplateItem(_Model):
    position: int = Field(..., ge=1)
    label: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    isRequired: bool = True


class TemplateType(_Model):
    typeName: Literal[INSPECTION_TYPES]
    checklistItems: List[TemplateItem] = Field(..., min_length=1)
    allowOverallRemarks: bool = True
    allowOverallPhotos: bool = True
    allowVideos: bool = False
    maxVideos: int = Field(2, ge=0, le=10)

    @model_validator(mode='after')
    def _unique_positions(self):
        positions = [i.position for i in self.checklistItems]
        if len(positions) != len(set(positions)):
            raise ValueError(f'Duplicate checklist item positions in type: {self.typeName}')
        if self.allowVideos and self.typeName not in VIDEO_ALLOWED_TYPES:
            raise ValueError(f"Videos are only allowed for {' and '.join(VIDEO_ALLOWED_TYPES)} types")
        return self


class TemplatePayload(_Model):
    name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    types: List[TemplateType] = Field(..., min_length=1)
    isActive: bool = True

    @model_validator(mode='after')
    def _unique_types(self):
        names = [t.typeName for t in self.types]
        if len(names) != len(set(names)):
            raise ValueError('Duplicate type names in template')
        return self


# Small helper to validate input dictionaries

def _error_rows(e: ValidationError):
    rows = []
    for err in e.errors():
        field = '.'.join(str(p) for p in err.get('loc', ())) or '__root__'
        rows.append({'field': field, 'message': err.get('msg')})
    return rows


def validate_payload(model, payload, debug=None):
    """Validate `payload` against `model`, raising ValidationFailure with per-field errors."""
    if not isinstance(payload, dict):
        raise ValidationFailure('Request body must be a JSON object')
    payload = to_camel_case_keys(payload)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        if debug:
            debug(f'{model.__name__} validation error: {e}')
        raise ValidationFailure('Validation failed', errors=_error_rows(e))
