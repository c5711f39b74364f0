from tsureben.models.user import User
from tsureben.models.document import Document

__all__ = [
    "User",
    "Document",
]
