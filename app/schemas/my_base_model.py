import logging
from typing import Any, Dict

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CustomBaseModel(BaseModel):
    """Custom base model for all response schemas.
    - pre-process the data before init
    - set the default value if the value is invalid
    - helper to build from store records (hashes come back as str -> str)
    """

    def __init__(self, **data: Any) -> None:
        for attr, value in data.items():
            attr_type = None
            me = self.__class__
            while attr_type is None and me != CustomBaseModel:
                try:
                    attr_type = me.model_fields[attr].annotation
                except KeyError:
                    if me.__base__ is not None:
                        me = me.__base__
                    else:
                        break
                    continue

            # process simple type
            if attr_type in (int, float, str, bool):
                try:  # try to convert the value to the type of the attribute
                    if attr_type is bool and isinstance(value, str):
                        data[attr] = value.strip().lower() in ("1", "true", "yes")
                    else:
                        data[attr] = attr_type(value)
                except (TypeError, ValueError):
                    logger.debug("Invalid value for key: %s, using default", attr)
                    field = me.model_fields.get(attr)
                    if field is not None and field.default is not None:
                        data[attr] = field.default
                    else:
                        data[attr] = attr_type()
        super().__init__(**data)

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        if isinstance(record, dict):
            return cls(**record)
        raise ValueError(f"Invalid record type: {type(record)}")
