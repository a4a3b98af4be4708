"""tictactoe_cfr package.

Counterfactual regret minimization for tic-tac-toe where each player
secretly wants a particular outcome: state graph, trainer, checkpoints,
compact strategy export and its reader.

Convenience imports are exposed for common workflows.
"""

from .cfr import contempt_schedule, train
from .checkpoint import CheckpointError, load_or_build, save
from .export import ExportArgs, export_strategy, run_export
from .graph import map_game
from .session import TrainingSession
from .strategy import StrategyTable
from .training import TrainArgs, run_training

__all__ = [
    "map_game",
    "train",
    "contempt_schedule",
    "TrainingSession",
    "load_or_build",
    "save",
    "CheckpointError",
    "export_strategy",
    "run_export",
    "ExportArgs",
    "StrategyTable",
    "run_training",
    "TrainArgs",
]
