"""Participant payload validation for offer acceptance."""

from collections.abc import Mapping, Sequence
from typing import Any

from attrs import frozen
from beartype import beartype

from ..core.errors import LifecycleError, QuoteErrorKind
from ..core.result_types import Err, Ok, Result
from ..models.quote import ParticipantInput

MAX_DOCUMENT_LENGTH = 50
MAX_AGE = 120
ADULT_AGE = 18


@frozen
class ValidatedParticipant:
    """Normalized participant row; its list position becomes ``sort_order``."""

    full_name: str
    age: int | None
    document_type: str | None
    document_number: str | None
    is_child: bool


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_age(value: Any) -> int | None:
    """Whole years; numeric strings are accepted. Raises ``ValueError``."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(value)
    age = int(value.strip()) if isinstance(value, str) else value
    if not isinstance(age, int) or not 0 <= age <= MAX_AGE:
        raise ValueError(value)
    return age


def _invalid(index: int, field_name: str, reason: str) -> Err[LifecycleError]:
    return Err(
        LifecycleError(
            QuoteErrorKind.VALIDATION,
            f"Partecipante {index + 1}: {reason}",
            index=index,
            field_name=field_name,
        )
    )


@beartype
def validate_participants(
    rows: Sequence[ParticipantInput | Mapping[str, Any]],
) -> Result[list[ValidatedParticipant], LifecycleError]:
    """Validate every row, stopping at the first invalid one.

    Output order equals input order. Blank document fields become ``None``.
    An explicit child flag wins; without one the flag follows ``age`` and
    with neither the participant is an adult.
    """
    validated: list[ValidatedParticipant] = []
    for index, row in enumerate(rows):
        data = row.model_dump() if isinstance(row, ParticipantInput) else dict(row)

        full_name = _clean(data.get("full_name"))
        if full_name is None:
            return _invalid(index, "full_name", "il nome completo è obbligatorio")

        document_type = _clean(data.get("document_type"))
        document_number = _clean(data.get("document_number"))
        if document_type is not None and len(document_type) > MAX_DOCUMENT_LENGTH:
            return _invalid(index, "document_type", "tipo documento troppo lungo")
        if document_number is not None and len(document_number) > MAX_DOCUMENT_LENGTH:
            return _invalid(index, "document_number", "numero documento troppo lungo")

        try:
            age = _parse_age(data.get("age"))
        except ValueError:
            return _invalid(index, "age", "età non valida")

        is_child = data.get("is_child")
        if is_child is None:
            is_child = age is not None and age < ADULT_AGE
        elif not isinstance(is_child, bool):
            return _invalid(index, "is_child", "il flag bambino deve essere vero o falso")

        validated.append(
            ValidatedParticipant(
                full_name=full_name,
                age=age,
                document_type=document_type,
                document_number=document_number,
                is_child=is_child,
            )
        )
    return Ok(validated)
