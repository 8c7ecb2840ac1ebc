"""Service layer package for encapsulating circulation business logic."""

from .borrowing import BorrowResult, BorrowService  # noqa: F401
from .errors import CirculationError, InvalidStateError, NotFoundError  # noqa: F401
from .pagination import Page  # noqa: F401
from .reservation import ReservationService  # noqa: F401
