"""Domain errors and the field error collector.

Validation in this service never stops at the first problem. Every check of a
validation pass records its violation on a :class:`FieldErrorCollector` and
the pass ends with a single :meth:`FieldErrorCollector.raise_if_errors` call,
so callers receive the complete list at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Error codes carried by FieldError.code
REQUIRED = "REQUIRED"
INVALID_VALUE = "INVALID_VALUE"
NOT_FOUND = "NOT_FOUND"
DUPLICATE = "DUPLICATE"
CONSECUTIVE_DUPLICATE = "CONSECUTIVE_DUPLICATE"
INVALID_STATE = "INVALID_STATE"
INVALID_REFERENCE = "INVALID_REFERENCE"
BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"


@dataclass(frozen=True)
class FieldError:
    field: str
    code: str
    message: str
    value: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "code": self.code,
            "message": self.message,
            "value": self.value,
        }


class PathwayError(Exception):
    """Base class for every error raised by the pathways domain."""


class FieldValidationError(PathwayError):
    """One or more field level violations found in a single validation pass."""

    def __init__(self, field_errors: Iterable[FieldError]) -> None:
        self.field_errors: list[FieldError] = list(field_errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.field_errors)
        super().__init__(summary or "Validation failed")

    @property
    def codes(self) -> list[str]:
        return [e.code for e in self.field_errors]

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "FieldValidationError":
        """Translate a pydantic parsing failure into collected field errors."""

        errors = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"]) or "payload"
            code = REQUIRED if err["type"] == "missing" else INVALID_VALUE
            errors.append(FieldError(field, code, err["msg"], err.get("input")))
        return cls(errors)


class BusinessRuleError(FieldValidationError):
    """State or business rule violation (ownership, default protection...)."""


class NotFoundError(PathwayError):
    """A referenced entity does not exist or is soft-deleted."""

    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id {entity_id} not found")


class InternalInvariantError(PathwayError):
    """Programming defect: an entity is missing data it must always carry."""


class FieldErrorCollector:
    """Accumulates field errors during one validation pass."""

    def __init__(self) -> None:
        self._errors: list[FieldError] = []

    def add_error(self, field: str, code: str, message: str, value: Any = None) -> None:
        self._errors.append(FieldError(field, code, message, value))

    def extend(self, other: "FieldErrorCollector", prefix: str = "") -> None:
        """Copy another collector's errors, optionally nesting their fields."""

        for error in other.errors:
            field = f"{prefix}.{error.field}" if prefix else error.field
            self._errors.append(
                FieldError(field, error.code, error.message, error.value)
            )

    @property
    def errors(self) -> list[FieldError]:
        return list(self._errors)

    @property
    def has_errors(self) -> bool:
        return bool(self._errors)

    def raise_if_errors(
        self, error_cls: type[FieldValidationError] = FieldValidationError
    ) -> None:
        if self._errors:
            raise error_cls(self._errors)


def parse_payload(model_cls: type[ModelT], data: Any) -> ModelT:
    """Validate caller data into ``model_cls``, reporting problems as field errors."""

    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise FieldValidationError.from_pydantic(exc) from exc


def raise_business_rule(field: str, code: str, message: str, value: Any = None) -> None:
    """Raise a :class:`BusinessRuleError` carrying a single violation."""

    collector = FieldErrorCollector()
    collector.add_error(field, code, message, value)
    collector.raise_if_errors(BusinessRuleError)


# Messages shared by the aggregates and the bulk sync service.
PATHWAY_MESSAGES = {
    "same_origin_destination": "Origin and destination nodes cannot be the same",
    "empty_trip_sellable": "Empty trip pathways cannot be sellable",
    "activation_without_options": (
        "Pathway cannot be activated without at least one option"
    ),
    "not_persisted": (
        "Pathway has not been persisted yet. Call save() first."
    ),
    "origin_node_not_found": "Origin node not found",
    "destination_node_not_found": "Destination node not found",
    "option_belongs_to_different_pathway": "Option belongs to a different pathway",
    "cannot_remove_last_option": (
        "Cannot remove the last option from an active pathway"
    ),
    "cannot_remove_default_option": (
        "Cannot remove the default option. Set another option as default first."
    ),
    "first_option_must_be_default": "The first option of a pathway must be the default",
    "default_option_inactive": "An inactive option cannot become the default",
}

OPTION_MESSAGES = {
    "distance_required": "distance_km is required and must be greater than 0",
    "time_required": "typical_time_min is required and must be greater than 0",
    "pass_through_requires_time": (
        "pass_through_time_min is required and must be greater than 0 "
        "when is_pass_through is true"
    ),
    "pass_through_time_without_flag": (
        "pass_through_time_min can only be set when is_pass_through is true"
    ),
    "default_requires_active": "The default option must be active",
    "not_persisted": "Pathway option has not been persisted yet. Call save() first.",
    "toll_node_not_found": "Toll node not found",
    "duplicate_toll_node": "Toll node is already used by this option",
    "consecutive_duplicate_toll_node": "Toll node repeats the previous toll",
}

BULK_SYNC_MESSAGES = {
    "multiple_defaults": "Only one option can be marked as default",
    "duplicate_names": "Option names must be unique within the payload",
    "duplicate_ids": "The same option id is listed more than once",
    "option_not_found": "Pathway option not found",
    "option_from_different_pathway": "Option belongs to a different pathway",
    "empty_active_pathway": "Cannot remove all options from an active pathway",
    "no_default": (
        "Exactly one option must be the default; mark one option with is_default"
    ),
    "pathway_mismatch": "Pathway id does not match the pathway being synced",
}
