from fastapi import HTTPException, status


class NotFoundException(HTTPException):
    def __init__(self, detail: str = "Object not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ExerciseNotFoundException(NotFoundException):
    def __init__(self, exercise_id: int):
        super().__init__(detail=f"Exercise with id={exercise_id} not found")


class SetNotFoundException(NotFoundException):
    def __init__(self, exercise_index: int, set_index: int | None = None):
        if set_index is None:
            detail = f"No active exercise at index {exercise_index}"
        else:
            detail = f"No set at index {set_index} for active exercise {exercise_index}"
        super().__init__(detail=detail)


class NoActiveSessionException(HTTPException):
    def __init__(self, detail: str = "No active workout session"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class UnauthorizedException(HTTPException):
    def __init__(self, detail: str = "Owner could not be resolved"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class RemoteUnavailableException(HTTPException):
    def __init__(self, operation: str, detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail or f"Persistence API failed during {operation}",
        )


class RemoteGatewayError(Exception):
    """A persistence API call did not succeed."""

    def __init__(self, operation: str, status_code: int | None = None, error: str | None = None):
        self.operation = operation
        self.status_code = status_code
        self.error = error
        super().__init__(f"{operation} failed (status={status_code}, error={error})")
