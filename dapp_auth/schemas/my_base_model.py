from dataclasses import asdict, is_dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CustomBaseModel(BaseModel):
    """Custom base model for all schemas.
    - snake_case attributes in Python, camelCase keys on the wire
    - accepts either form on input
    - build a response from a store record with from_record(), dropping
      attributes the schema does not declare (e.g. password_hash)
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_record(cls, record: Any):
        if is_dataclass(record) and not isinstance(record, type):
            data = asdict(record)
        elif isinstance(record, dict):
            data = record
        else:
            raise ValueError(f"Invalid record type: {type(record)}")
        return cls(**{key: value for key, value in data.items() if key in cls.model_fields})


class Message(CustomBaseModel):
    error: str = ""
    message: str = ""
