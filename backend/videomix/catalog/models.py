"""
Clip and Group models.

Clips are owned by the storage layer. The engine only references them:
paths are read by the transcoder, nothing is copied.
"""

from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Clip(BaseModel):
    """A single uploaded source clip."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    path: str
    duration: float = Field(gt=0)  # Source duration in seconds
    group_id: Optional[str] = None  # None = ungrouped
    width: Optional[int] = None
    height: Optional[int] = None
    codec: Optional[str] = None
    has_audio: bool = True
    original_name: Optional[str] = None


class Group(BaseModel):
    """
    A named bucket of interchangeable clips occupying one output slot.

    Membership order is the order clips were added to the group; the
    first member is what the generator picks when group mixing is off.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str = ""
    order: int = 0  # Display order
    clips: Tuple[Clip, ...] = ()

    @field_validator("clips", mode="before")
    @classmethod
    def _coerce_clips(cls, value):
        if isinstance(value, list):
            return tuple(value)
        return value

    @property
    def clip_ids(self) -> List[str]:
        return [clip.id for clip in self.clips]
