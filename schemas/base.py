from pydantic import BaseModel, ConfigDict
from typing import Any, Dict


class SchemaBase(BaseModel):
    """
    Base class for all pipeline schemas.
    Enforces strict fields and provides safe serialization.
    """

    model_config = ConfigDict(extra="forbid")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class FrozenSchemaBase(SchemaBase):
    """
    Schemas that are produced once and then only read (e.g. trend data).
    Assigning to a field raises a pydantic ValidationError.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)
