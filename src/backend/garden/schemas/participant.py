from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from garden.models.participant import Participant


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RegisterRequest(StrictCamelModel):
    name: str = ""
    phone: str = ""
    employee_id: str = ""


class FlowerPayload(StrictCamelModel):
    seed_name: str | None = Field(default=None, max_length=120)
    flower_image: str | None = Field(default=None, max_length=255)
    # Older clients embed the level here; it is accepted and never applied.
    level: int | None = None


class ProgressUpdate(StrictCamelModel):
    user_id: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=64)
    level: int | None = Field(default=None, strict=True)
    flower: FlowerPayload | None = None
    commitment_percentage: int | None = Field(default=None, strict=True)
    name: str | None = Field(default=None, max_length=200)


class FlowerOut(CamelModel):
    seed_name: str | None
    flower_image: str | None
    level: int


class ParticipantOut(CamelModel):
    id: str
    name: str
    phone: str
    employee_id: str
    registered_at: datetime
    updated_at: datetime
    progress_level: int
    commitment_percentage: int | None
    flower: FlowerOut

    @classmethod
    def from_model(cls, participant: Participant) -> "ParticipantOut":
        return cls(
            id=participant.id,
            name=participant.name,
            phone=participant.phone,
            employee_id=participant.employee_id,
            registered_at=participant.registered_at,
            updated_at=participant.updated_at,
            progress_level=participant.progress_level,
            commitment_percentage=participant.commitment_percentage,
            flower=FlowerOut(
                seed_name=participant.flower_seed_name,
                flower_image=participant.flower_image,
                level=participant.progress_level,
            ),
        )


class LiveParticipant(CamelModel):
    id: str
    name: str
    progress_level: int
    flower: FlowerOut

    @classmethod
    def from_model(cls, participant: Participant) -> "LiveParticipant":
        return cls(
            id=participant.id,
            name=participant.name,
            progress_level=participant.progress_level,
            flower=FlowerOut(
                seed_name=participant.flower_seed_name,
                flower_image=participant.flower_image,
                level=participant.progress_level,
            ),
        )


class RegisterResponse(CamelModel):
    success: bool = True
    created: bool
    message: str
    user: ParticipantOut


class ProgressResponse(CamelModel):
    success: bool = True
    final_level: int
    changed: bool
    user: ParticipantOut


class ParticipantResponse(CamelModel):
    success: bool = True
    user: ParticipantOut


class ParticipantListResponse(CamelModel):
    success: bool = True
    users: list[ParticipantOut]
    count: int
    timestamp: datetime


class LiveDataResponse(CamelModel):
    participants: list[LiveParticipant]
    count: int
    poll_interval_seconds: int
    timestamp: datetime


class WinnerResponse(CamelModel):
    success: bool = True
    winner: ParticipantOut
    eligible_count: int
