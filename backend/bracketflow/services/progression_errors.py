"""
Error taxonomy for bracket and Swiss progression.

Every failure is raised synchronously to the caller and never retried: each
one means bad input or a skipped pipeline step, not a transient fault.
"""


class ProgressionError(Exception):
    """Base class for all progression failures"""

    pass


class InvalidConfiguration(ProgressionError):
    """Raised when a bracket cannot be built from the given team count/mode/seeds"""

    pass


class InvalidWinner(ProgressionError):
    """Raised when the declared winner is not one of the two participants"""

    pass


class InvalidScore(ProgressionError):
    """Raised when a score string is inconsistent with the match format or winner"""

    pass


class MatchNotFound(ProgressionError):
    """Raised when a match id is not part of the snapshot"""

    pass


class StaleTopology(ProgressionError):
    """Raised when a match is resolved before its prerequisite slots are known,
    or when the advancement graph points somewhere it should not"""

    pass


class PairingExhausted(ProgressionError):
    """Raised (strict mode only) when a Swiss pool cannot be paired without a rematch"""

    pass
