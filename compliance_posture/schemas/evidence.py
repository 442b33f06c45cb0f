"""
Evidence upload records.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, constr


class EvidenceFile(BaseModel):
    """An uploaded artifact as received from the caller.

    ``size`` and ``content_type`` are captured here at upload time and copied
    onto the metadata row; they are never re-derived from the stored binary.
    """

    model_config = ConfigDict(extra="forbid")

    name: constr(strip_whitespace=True, min_length=1, max_length=255)
    content_type: str = Field(default="application/octet-stream", max_length=128)
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

