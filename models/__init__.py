from .check_in_session import (
    CheckInRequest,
    CheckInSession,
    CheckOutRequest,
    LocationReport,
    SessionStatus,
)
from .school import School
