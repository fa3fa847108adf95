"""
Input validation for orchestration requests.

Every check here runs before any network call, so a malformed request
never reaches Azure DevOps.
"""

from typing import Any, Iterable, List, Mapping, Optional


class ValidationError(Exception):
    """Raised when input validation fails."""
    pass


class WorkItemIdValidator:
    """Validator for work item identifiers."""

    @staticmethod
    def validate(work_item_id: Any, name: str = "work_item_id") -> int:
        """
        Validate a single work item ID.

        Args:
            work_item_id: The ID to validate
            name: Argument name used in the error message

        Returns:
            The validated ID

        Raises:
            ValidationError: If the ID is not a positive integer
        """
        # bool is an int subclass; reject it explicitly
        if isinstance(work_item_id, bool) or not isinstance(work_item_id, int) or work_item_id <= 0:
            raise ValidationError(
                f"Invalid {name}: {work_item_id!r}. Must be a positive integer."
            )
        return work_item_id

    @staticmethod
    def validate_many(ids: Optional[Iterable[Any]], name: str = "ids") -> List[int]:
        """
        Validate a non-empty list of work item IDs.

        Duplicates are dropped, first occurrence wins.

        Raises:
            ValidationError: If the list is missing, empty or holds an invalid ID
        """
        if ids is None or isinstance(ids, (str, bytes)):
            raise ValidationError(f"{name} must be a non-empty list of work item IDs")

        validated: List[int] = []
        for work_item_id in ids:
            work_item_id = WorkItemIdValidator.validate(work_item_id, name)
            if work_item_id not in validated:
                validated.append(work_item_id)

        if not validated:
            raise ValidationError(f"{name} must be a non-empty list of work item IDs")

        return validated


class FieldMapValidator:
    """Validator for field-name -> value maps sent as JSON-Patch documents."""

    @staticmethod
    def validate(fields: Optional[Mapping[str, Any]], allow_empty: bool = False) -> Mapping[str, Any]:
        """
        Validate a field map.

        Args:
            fields: Mapping of field reference name to value
            allow_empty: Whether an empty map is acceptable

        Returns:
            The validated map (unchanged)

        Raises:
            ValidationError: If the map is missing, empty, or has blank keys
        """
        if fields is None:
            if allow_empty:
                return {}
            raise ValidationError("fields are required")

        if not isinstance(fields, Mapping):
            raise ValidationError(
                f"fields must be a mapping of field name to value, got {type(fields).__name__}"
            )

        if not fields and not allow_empty:
            raise ValidationError("fields cannot be empty")

        for field_name in fields:
            if not isinstance(field_name, str) or not field_name.strip():
                raise ValidationError(f"Invalid field name: {field_name!r}")

        return fields


def require(value: Any, name: str) -> Any:
    """
    Ensure a required argument is present.

    Strings must be non-blank; other values must not be None.

    Raises:
        ValidationError: If the value is missing
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required")
    return value


def validate_work_item_id(work_item_id: Any, name: str = "work_item_id") -> int:
    """Validate a single work item ID."""
    return WorkItemIdValidator.validate(work_item_id, name)


def validate_work_item_ids(ids: Optional[Iterable[Any]], name: str = "ids") -> List[int]:
    """Validate a non-empty list of work item IDs."""
    return WorkItemIdValidator.validate_many(ids, name)


def validate_fields(fields: Optional[Mapping[str, Any]], allow_empty: bool = False) -> Mapping[str, Any]:
    """Validate a field map."""
    return FieldMapValidator.validate(fields, allow_empty=allow_empty)
