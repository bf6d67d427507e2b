from datetime import datetime
from typing import Any

from bson import ObjectId
from pydantic import BaseModel, Field, ConfigDict

from brontie.utils.clock import utcnow


class PyObjectId(ObjectId):
    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        from pydantic_core import core_schema

        return core_schema.no_info_plain_validator_function(cls.validate)

    @classmethod
    def validate(cls, value: Any) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        raise ValueError("Invalid ObjectId")


def to_object_id(value: str | ObjectId) -> ObjectId:
    """Parse an id coming from a route or a foreign key."""
    return PyObjectId.validate(value)


class MongoModel(BaseModel):
    id: PyObjectId = Field(default_factory=PyObjectId, alias="_id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        from_attributes=True
    )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)
