"""Domain errors raised by the tutoring services."""


class SessionAlreadyEnded(Exception):
    """Raised when an ended learning session is ended a second time."""

    def __init__(self, session_id: int) -> None:
        self.session_id = session_id
        super().__init__(f"Learning session {session_id} has already ended")
