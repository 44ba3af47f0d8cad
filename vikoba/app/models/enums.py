"""
Ledger enumerations.

Values are the strings stored in documents and returned by the API.
"""

import enum


class ActorRole(str, enum.Enum):
    """
    Roles supplied by the identity provider.

    Roles:
        ADMIN: Votes on loan requests, records transactions, runs imports
        MEMBER: Contributes, borrows and reads their own position
    """
    ADMIN = "Admin"
    MEMBER = "Member"


class MemberStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    PENDING = "Pending"


class TransactionKind(str, enum.Enum):
    CONTRIBUTION = "Contribution"
    LOAN = "Loan"
    REPAYMENT = "Repayment"


class Category(str, enum.Enum):
    """Hisa and Jamii are contribution categories, Standard and Dharura are loan categories."""
    HISA = "Hisa"
    JAMII = "Jamii"
    STANDARD = "Standard"
    DHARURA = "Dharura"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "Completed"
    PENDING = "Pending"


class TransactionSource(str, enum.Enum):
    DIRECT = "direct"
    LOAN_APPROVAL = "loan_approval"
    BULK_IMPORT = "bulk_import"


class LoanType(str, enum.Enum):
    STANDARD = "Standard"
    DHARURA = "Dharura"


class LoanRequestStatus(str, enum.Enum):
    PENDING = "Pending"  # Waiting for every admin in the snapshot
    APPROVED = "Approved"  # Unanimous, loan transaction posted
    REJECTED = "Rejected"  # Vetoed by a single admin


class VoteState(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ActivityStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class EntityType(str, enum.Enum):
    TRANSACTION = "transaction"
    LOAN = "loan"
    MEMBER = "member"
    BULK_IMPORT = "bulk_import"


# Kind/category pairs a transaction may carry.
ALLOWED_CATEGORIES = {
    TransactionKind.CONTRIBUTION: frozenset({Category.HISA, Category.JAMII}),
    TransactionKind.LOAN: frozenset({Category.STANDARD, Category.DHARURA}),
    TransactionKind.REPAYMENT: frozenset({Category.STANDARD, Category.DHARURA}),
}

LOAN_CATEGORIES = (Category.STANDARD, Category.DHARURA)
CONTRIBUTION_CATEGORIES = (Category.HISA, Category.JAMII)
