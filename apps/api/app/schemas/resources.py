from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    completed: bool | None = None


class EventCompletion(BaseModel):
    completed: bool = True


class EventResponse(BaseModel):
    id: int
    family_id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    completed_at: datetime | None
    created_by: str


class EventListResponse(BaseModel):
    items: list[EventResponse]


class MedicationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    dosage: str = Field(default="", max_length=255)
    instructions: str = ""


class MedicationResponse(BaseModel):
    id: int
    family_id: int
    name: str
    dosage: str
    instructions: str
    created_by: str


class MedicationListResponse(BaseModel):
    items: list[MedicationResponse]


class MedicationLogCreate(BaseModel):
    given_at: datetime | None = None
    notes: str = ""


class MedicationLogResponse(BaseModel):
    id: int
    family_id: int
    medication_id: int
    given_at: datetime
    notes: str
    logged_by: str


class MedicationLogListResponse(BaseModel):
    items: list[MedicationLogResponse]


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1)


class DocumentResponse(BaseModel):
    id: int
    family_id: int
    title: str
    file_url: str
    created_by: str
    created_at: datetime


class DocumentListResponse(BaseModel):
    items: list[DocumentResponse]


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)
    event_id: int | None = None


class MessageResponse(BaseModel):
    id: int
    family_id: int
    event_id: int | None
    sender_id: str
    content: str
    created_at: datetime


class MessageListResponse(BaseModel):
    items: list[MessageResponse]


class TimeEntryCreate(BaseModel):
    start_time: datetime
    end_time: datetime | None = None
    notes: str = ""


class TimeEntryUpdate(BaseModel):
    end_time: datetime | None = None
    notes: str | None = None


class TimeEntryResponse(BaseModel):
    id: int
    family_id: int
    user_id: str
    start_time: datetime
    end_time: datetime | None
    notes: str


class TimeEntryListResponse(BaseModel):
    items: list[TimeEntryResponse]


class PayRateUpsert(BaseModel):
    hourly_rate: float = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class PayRateResponse(BaseModel):
    family_id: int
    user_id: str
    hourly_rate: float
    currency: str


class PayRateListResponse(BaseModel):
    items: list[PayRateResponse]
