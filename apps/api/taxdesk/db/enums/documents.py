"""Document-related enums."""

from enum import Enum


class DocumentRequestStatus(str, Enum):
    """Aggregate status of a document request."""

    PENDING = "pending"
    PARTIALLY_UPLOADED = "partially_uploaded"
    COMPLETED = "completed"
    EXPIRED = "expired"


class DocumentRequestItemStatus(str, Enum):
    """Status of one checklist item. UPLOADED is terminal."""

    PENDING = "pending"
    UPLOADED = "uploaded"


class DocumentCategory(str, Enum):
    """Category of a stored client document."""

    W2 = "w2"
    FORM_1099 = "1099"
    ID = "id"
    PRIOR_RETURN = "prior_return"
    INTAKE = "intake"
    OTHER = "other"
