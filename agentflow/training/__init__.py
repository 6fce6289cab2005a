"""Training feedback loop: rated sample runs and their persistence."""

from agentflow.training.feedback import TrainingFeedbackLoop, UnratedRuns
from agentflow.training.store import TrainingStore

__all__ = ["TrainingFeedbackLoop", "TrainingStore", "UnratedRuns"]
