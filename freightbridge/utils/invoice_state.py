"""
Invoice payment status tracking
"""


class InvoiceStatus:
    UNPAID = "unpaid"
    AWAITING_VERIFICATION = "awaiting_verification"
    PAID = "paid"


class InvoiceType:
    CLIENT = "client"
    VENDOR = "vendor"


class InvoiceStateMachine:
    """
    unpaid → awaiting_verification → paid
       ↘───────────────────────────↗   (admin may mark paid directly)
    """

    TRANSITIONS = {
        InvoiceStatus.UNPAID: [InvoiceStatus.AWAITING_VERIFICATION, InvoiceStatus.PAID],
        InvoiceStatus.AWAITING_VERIFICATION: [InvoiceStatus.PAID],
        InvoiceStatus.PAID: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return to_status in cls.TRANSITIONS.get(from_status, [])

    @classmethod
    def sources_of(cls, to_status: str) -> list:
        return [frm for frm, targets in cls.TRANSITIONS.items() if to_status in targets]
