from bracketflow.models.match import Match
from bracketflow.models.prediction import Prediction
from bracketflow.models.stage import Stage
from bracketflow.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Stage",
    "Match",
    "Prediction",
]
