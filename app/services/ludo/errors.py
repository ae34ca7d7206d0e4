class GameInvariantError(RuntimeError):
    """Raised when game state breaks an invariant the rules engine relies on.

    Rule violations (wrong turn, unavailable color...) are reported through
    OperationResult instead; this error means a programming defect.
    """
