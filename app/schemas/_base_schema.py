# app/schemas/_base_schema.py
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated
from pydantic.functional_validators import BeforeValidator

# Mongo ObjectId -> str
PyObjectId = Annotated[str, BeforeValidator(lambda x: str(x))]


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python and in Mongo documents."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }
