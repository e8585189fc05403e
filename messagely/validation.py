import logging
from typing import Any, Type, TypeVar

import pydantic

from messagely.errors import ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def parse_model(model: Type[ModelT], data: Any) -> ModelT:
    """
    Validate a mapping (or an existing model) against a schema.

    Pydantic failures are re-raised as the domain ValidationError with the
    offending field names, so callers only ever see the domain taxonomy.
    """
    if isinstance(data, model):
        return data
    if isinstance(data, pydantic.BaseModel):
        data = data.model_dump()
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "body" for err in e.errors()})
        logger.info(f"Validation failed for {model.__name__}: {fields}")
        raise ValidationError(f"Invalid or missing fields: {', '.join(fields)}") from e
