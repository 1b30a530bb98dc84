"""
Pydantic schemas mirroring the REST contract.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _EventModel(BaseModel):
    id: Optional[str] = None
    frame: int = Field(ge=0)
    model_config = ConfigDict(populate_by_name=True)

    def to_event_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ExpressionEventModel(_EventModel):
    type: Literal["expression"] = "expression"
    entity_id: str = Field(validation_alias=AliasChoices("entity_id", "entityId", "targetId"))
    properties: Dict[str, Any] = Field(default_factory=dict)


class BoundsEventModel(_EventModel):
    type: Literal["bounds"] = "bounds"
    left: float
    right: float
    top: float
    bottom: float


class AnimationEventModel(_EventModel):
    type: Literal["animation"] = "animation"
    kind: str = Field(validation_alias=AliasChoices("kind", "animationType"))
    target_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("target_id", "targetId"))
    duration_frames: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("duration_frames", "durationFrames")
    )
    start_value: float = Field(default=0.0, validation_alias=AliasChoices("start_value", "startValue"))
    end_value: float = Field(default=0.0, validation_alias=AliasChoices("end_value", "endValue"))
    steps: int = Field(default=0, ge=0)
    easing: str = "linear"
    variable_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("variable_name", "variableName", "variable")
    )
    auto_detect: bool = Field(default=False, validation_alias=AliasChoices("auto_detect", "autoDetect"))
    property_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("property_name", "propertyName", "property")
    )

    @field_validator("kind", "easing", mode="before")
    @classmethod
    def _normalise_name(cls, value: object) -> str:
        return str(value or "").strip().lower()


EventCreateRequest = Annotated[
    Union[ExpressionEventModel, BoundsEventModel, AnimationEventModel],
    Field(discriminator="type"),
]


class SnapshotCreateRequest(BaseModel):
    frame: int = Field(ge=0)
    description: Optional[str] = None
    state: Optional[Union[Dict[str, Any], str]] = None


class SnapshotUpdateRequest(BaseModel):
    frame: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    state: Optional[Union[Dict[str, Any], str]] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RenderSettingsModel(BaseModel):
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    pixel_density: float = Field(
        default=1.0,
        gt=0,
        validation_alias=AliasChoices("pixel_density", "pixelDensity", "targetPixelRatio"),
    )
    background: str = Field(default="#ffffff", validation_alias=AliasChoices("background", "backgroundColor"))
    model_config = ConfigDict(populate_by_name=True)


class PlaybackCommandRequest(BaseModel):
    op: str
    expected_rev: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("expected_rev", "expectedRev", "rev"),
        serialization_alias="expected_rev",
    )
    frame: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("frame", "position", "value"),
    )

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    @field_validator("op", mode="before")
    @classmethod
    def _normalise_op(cls, value: object) -> str:
        result = str(value or "").strip()
        if not result:
            raise ValueError("op is required")
        return result

    @field_validator("expected_rev")
    @classmethod
    def _validate_expected_rev(cls, value: Optional[int]) -> Optional[int]:
        if value is None:
            return None
        coerced = int(value)
        if coerced < 0:
            raise ValueError("expected_rev must be non-negative")
        return coerced
