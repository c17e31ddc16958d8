from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes with the camelCase field names of the stored records; accepts either spelling."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
