"""
Exam result field schema and results payload validation

An ExamType carries a field schema (sections -> fields). Result payloads
are checked field by field against it before any mutation: numeric fields
are coerced to numbers, enum fields are restricted to their options (or
empty), and anything that cannot be stored as JSON is refused.

When the exam type has a usable schema, keys it does not define are refused,
not stripped.
"""

import json
import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.exceptions import ValidationException

logger = logging.getLogger(__name__)

ResultValue = Union[str, int, float]
ResultsRecord = Dict[str, ResultValue]


class FieldDef(BaseModel):
    """Definition of a single result field"""
    model_config = ConfigDict(populate_by_name=True)
    
    key: str
    label: str
    type: Literal["string", "numeric", "enum"]
    unit: Optional[str] = None
    reference_range: Optional[str] = Field(None, alias="referenceRange")
    options: Optional[List[str]] = None


class Section(BaseModel):
    """Group of related result fields"""
    id: str
    label: str
    fields: List[FieldDef] = []


class FieldSchema(BaseModel):
    sections: List[Section]
    
    def all_fields(self) -> List[FieldDef]:
        return [f for section in self.sections for f in section.fields]
    
    def field_map(self) -> Dict[str, FieldDef]:
        return {f.key: f for f in self.all_fields()}


def parse_field_schema(value: Any) -> Optional[FieldSchema]:
    """Normalize a stored schema (JSON string or object).
    
    Malformed sections and fields are dropped; None is returned when no
    usable section remains.
    """
    if not value:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("Field schema is not valid JSON")
            return None
    if not isinstance(value, Mapping) or not isinstance(value.get("sections"), list):
        return None
    
    sections = []
    for raw_section in value["sections"]:
        if not isinstance(raw_section, Mapping):
            continue
        if not isinstance(raw_section.get("id"), str) or not isinstance(raw_section.get("label"), str):
            continue
        if not isinstance(raw_section.get("fields"), list):
            continue
        
        fields = []
        for raw_field in raw_section["fields"]:
            if not isinstance(raw_field, Mapping):
                continue
            try:
                fields.append(FieldDef.model_validate(raw_field))
            except ValidationError:
                logger.debug(f"Dropping malformed field definition: {raw_field!r}")
        sections.append(Section(id=raw_section["id"], label=raw_section["label"], fields=fields))
    
    if not sections:
        return None
    return FieldSchema(sections=sections)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_numeric(field: FieldDef, value: Any) -> Optional[Union[int, float]]:
    if value is None:
        return None
    if _is_number(value):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise ValidationException(f"El campo {field.label} debe ser numérico")
    else:
        raise ValidationException(f"El campo {field.label} debe ser numérico")
    
    if isinstance(number, float) and not math.isfinite(number):
        raise ValidationException(f"El campo {field.label} debe ser numérico")
    return number


def _coerce_enum(field: FieldDef, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationException(f"Valor inválido para {field.label}")
    if value == "" or not field.options or value in field.options:
        return value
    raise ValidationException(f"Valor inválido para {field.label}")


def _coerce_string(field: FieldDef, value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if _is_number(value):
        return str(value)
    raise ValidationException(f"El campo {field.label} debe ser texto")


_COERCERS = {
    "numeric": _coerce_numeric,
    "enum": _coerce_enum,
    "string": _coerce_string,
}


def _check_free_value(key: str, value: Any) -> Optional[ResultValue]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if _is_number(value) and (not isinstance(value, float) or math.isfinite(value)):
        return value
    raise ValidationException(f"Valor inválido para el campo {key}")


def validate_results(results: Any, schema: Optional[FieldSchema]) -> ResultsRecord:
    """Return a cleaned copy of ``results`` ready to persist.
    
    Keys missing from the payload or set to None are left out. Without a
    schema only the value shapes are checked.
    """
    if not isinstance(results, Mapping):
        raise ValidationException("Formato de resultados inválido")
    
    cleaned: ResultsRecord = {}
    field_map = schema.field_map() if schema else None
    
    for key, value in results.items():
        if not isinstance(key, str) or not key:
            raise ValidationException("Formato de resultados inválido")
        
        if field_map is None:
            coerced = _check_free_value(key, value)
        else:
            field = field_map.get(key)
            if field is None:
                raise ValidationException(f"Campo desconocido en resultados: {key}")
            coerced = _COERCERS[field.type](field, value)
        
        if coerced is not None:
            cleaned[key] = coerced
    
    try:
        json.dumps(cleaned, allow_nan=False)
    except (TypeError, ValueError):
        raise ValidationException("Los resultados no se pueden serializar")
    
    return cleaned
