from dataclasses import dataclass

from garden.services.errors import ValidationError
from garden.services.progress_merge import normalize_phone

REQUIRED_NAME_PARTS = 3

# Family-name particles are part of the word that follows them ("Al Saud").
NAME_PARTICLES = frozenset({"al", "el", "bin", "ibn", "bint", "abu", "abd", "abdul"})


@dataclass(frozen=True)
class RegistrationInput:
    name: str
    phone: str
    employee_id: str


def split_name_parts(name: str) -> list[str]:
    parts: list[str] = []
    pending: list[str] = []
    for token in name.split():
        if token.lower() in NAME_PARTICLES:
            pending.append(token)
            continue
        parts.append(" ".join([*pending, token]))
        pending = []
    if pending:
        parts.append(" ".join(pending))
    return parts


def has_required_parts(name: str) -> bool:
    # "Ahmed Al Saud" has three words; "Ahmed Al Saud Faisal" has three once
    # particles join the following word.
    return REQUIRED_NAME_PARTS in (len(name.split()), len(split_name_parts(name)))


def validate_registration(name: str, phone: str, employee_id: str) -> RegistrationInput:
    cleaned_name = " ".join((name or "").split())
    cleaned_phone = normalize_phone(phone)
    cleaned_employee_id = (employee_id or "").strip()

    if not cleaned_name or not cleaned_phone or not cleaned_employee_id:
        raise ValidationError("Name, phone, and employee ID are required")

    if not has_required_parts(cleaned_name):
        raise ValidationError(
            "Name must consist of exactly 3 parts (first name, middle name, last name)"
        )

    return RegistrationInput(
        name=cleaned_name,
        phone=cleaned_phone,
        employee_id=cleaned_employee_id,
    )
