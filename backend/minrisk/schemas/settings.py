import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

LabelList = List[str]


class AppConfigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[uuid.UUID] = None
    matrix_size: int
    likelihood_labels: LabelList
    impact_labels: LabelList
    divisions: LabelList
    departments: LabelList
    categories: LabelList
    updated_at: Optional[datetime] = None


class AppConfigUpdate(BaseModel):
    matrix_size: Optional[Literal[5, 6]] = None
    likelihood_labels: Optional[LabelList] = Field(default=None, min_length=5, max_length=6)
    impact_labels: Optional[LabelList] = Field(default=None, min_length=5, max_length=6)
    divisions: Optional[LabelList] = None
    departments: Optional[LabelList] = None
    categories: Optional[LabelList] = None

    @model_validator(mode="after")
    def labels_match_matrix(self) -> "AppConfigUpdate":
        if self.matrix_size is None:
            return self
        for name in ("likelihood_labels", "impact_labels"):
            labels = getattr(self, name)
            if labels is not None and len(labels) != self.matrix_size:
                raise ValueError(f"{name} must have {self.matrix_size} entries")
        return self
