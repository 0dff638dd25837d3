"""
Units - Composition of unit strings for derived quantities
"""

from typing import Optional


def _blank(units: Optional[str]) -> bool:
    return units is None or not units.strip()


def multiply_units(units1: Optional[str], units2: Optional[str]) -> str:
    """Units of a product; blank units drop out"""
    if not _blank(units1):
        if not _blank(units2):
            return f"{units1} {units2}"
        return units1
    if not _blank(units2):
        return units2
    return ""


def divide_units(units1: Optional[str], units2: Optional[str]) -> str:
    """Units of a quotient, e.g. 'm/(s)' or '1/(s)'"""
    if not _blank(units1):
        if not _blank(units2):
            return f"{units1}/({units2})"
        return units1
    if not _blank(units2):
        return f"1/({units2})"
    return ""


def make_frequency_units(time_units: Optional[str]) -> str:
    """
    Units of the reciprocal of an independent quantity

    Surrounding parentheses are removed and a leading '1/(...)' is undone,
    so the reciprocal of '1/(s)' is 's'.
    """
    if _blank(time_units):
        return ""
    units = time_units
    reciprocal = False
    while True:
        if units.startswith('(') and units.endswith(')'):
            units = units[1:-1]
        elif units.startswith('1/(') and units.endswith(')'):
            units = units[3:-1]
            reciprocal = not reciprocal
        else:
            break
    if _blank(units):
        return ""
    if reciprocal:
        return units
    if ' ' in units:
        return f"1/({units})"
    return f"1/{units}"
