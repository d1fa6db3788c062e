"""Round governance — objection vetoes, submitter bonds and challenges."""

from waterfall.governance.bond import BondBook, BondRecord, BondState, is_fraudulent
from waterfall.governance.objection import ObjectionBook, ObjectionOutcome

__all__ = [
    "BondBook",
    "BondRecord",
    "BondState",
    "ObjectionBook",
    "ObjectionOutcome",
    "is_fraudulent",
]
