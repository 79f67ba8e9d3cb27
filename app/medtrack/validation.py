from typing import List, Tuple

from .models import ALL_WEEKDAYS, DoseSchedule, Prescription


def validate_schedule(rule: DoseSchedule) -> Tuple[bool, List[str]]:
    errors = []
    if not isinstance(rule, DoseSchedule):
        errors.append("Input is not a DoseSchedule.")
        return False, errors

    if not rule.prescription_id:
        errors.append("prescription_id missing.")

    if not isinstance(rule.quantity, int) or rule.quantity <= 0:
        errors.append("quantity must be a positive integer.")

    if not rule.days_of_week:
        errors.append("days_of_week is empty.")
    else:
        bad = sorted(d for d in rule.days_of_week if d not in ALL_WEEKDAYS)
        if bad:
            errors.append(f"days_of_week has values outside 1..7: {bad}")

    return (len(errors) == 0), errors


def validate_prescription(p: Prescription) -> Tuple[bool, List[str]]:
    errors = []
    if not p.id:
        errors.append("id missing.")
    if not p.name or not p.name.strip():
        errors.append("name missing.")
    if not isinstance(p.units_per_dose, int) or p.units_per_dose <= 0:
        errors.append("units_per_dose must be a positive integer.")
    return (len(errors) == 0), errors
