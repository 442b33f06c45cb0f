"""
Framework reference data as loaded from a catalog file.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, model_validator


class ControlDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    control_ref: constr(strip_whitespace=True, min_length=1, max_length=64)
    control_name: constr(strip_whitespace=True, min_length=1, max_length=512)
    control_text: str = ""
    chapter: Optional[str] = None
    guidance: Optional[str] = None
    embedding: Optional[List[float]] = None


class FrameworkDefinition(BaseModel):
    """A framework and its controls.

    Example:
        {"key": "ISO27001", "name": "ISO/IEC 27001:2022",
         "controls": [{"control_ref": "A.5.1", "control_name": "Policies"}]}
    """

    model_config = ConfigDict(extra="ignore")

    key: constr(strip_whitespace=True, min_length=1, max_length=64)
    name: constr(strip_whitespace=True, min_length=1, max_length=256)
    description: str = ""
    controls: List[ControlDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_control_refs(self) -> "FrameworkDefinition":
        refs = [c.control_ref for c in self.controls]
        duplicates = sorted({r for r in refs if refs.count(r) > 1})
        if duplicates:
            raise ValueError(f"duplicate control_ref values: {', '.join(duplicates)}")
        return self
