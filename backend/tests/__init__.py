# Force SQLModel table registration at test discovery time
from bracketflow.models.match import Match  # noqa: F401
from bracketflow.models.prediction import Prediction  # noqa: F401
from bracketflow.models.stage import Stage  # noqa: F401
from bracketflow.models.tournament import Tournament  # noqa: F401
