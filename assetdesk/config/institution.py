"""
Institution identity printed on PDF exports and transfer receipts.

Values can be overridden per deployment through environment variables.
"""

from __future__ import annotations

import os

INSTITUTION_NAME = os.environ.get("INSTITUTION_NAME", "Facultad Regional")
INSTITUTION_UNIT = os.environ.get("INSTITUTION_UNIT", "Departamento de Patrimonio")
INSTITUTION_ADDRESS = os.environ.get("INSTITUTION_ADDRESS", "")
INSTITUTION_EMAIL = os.environ.get("INSTITUTION_EMAIL", "")
INSTITUTION_WEBSITE = os.environ.get("INSTITUTION_WEBSITE", "")


def institution_context() -> dict[str, str]:
    """Letterhead block handed to every PDF template as `institution`."""
    return {
        "name": INSTITUTION_NAME,
        "unit": INSTITUTION_UNIT,
        "address": INSTITUTION_ADDRESS,
        "email": INSTITUTION_EMAIL,
        "website": INSTITUTION_WEBSITE,
    }
