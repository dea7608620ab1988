"""
Engine error taxonomy.

Services raise these; the HTTP layer maps ``status_code`` onto an
HTTPException. Storage errors (SQLAlchemyError) are never wrapped here and
propagate as internal failures.
"""


class EngineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionError(EngineError):
    """Caller input is invalid. Nothing was written."""
    status_code = 400


class NotFoundError(PreconditionError):
    status_code = 404


class InvalidRankingsError(PreconditionError):
    pass


class PredictionsLockedError(PreconditionError):
    pass


class MissingRankingsError(PreconditionError):
    def __init__(self, missing_players: list[dict], total_players: int):
        submitted = total_players - len(missing_players)
        super().__init__(
            f"Not all players have submitted rankings. {submitted}/{total_players} submitted."
        )
        self.missing_players = missing_players
        self.total_players = total_players


class ConflictError(EngineError):
    """State already changed by someone else; retrying the same call won't help until it's resolved."""
    status_code = 409


class DraftAlreadyRunError(ConflictError):
    def __init__(self, message: str = "Draft has already been completed"):
        super().__init__(message)
