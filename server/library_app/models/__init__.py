from library_app.models.user import User
from library_app.models.book import Book
from library_app.models.transaction import Transaction

__all__ = [
    "User",
    "Book",
    "Transaction",
]
