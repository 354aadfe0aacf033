"""Operation kinds and their lifecycle states."""

from enum import Enum


class OperationKind(Enum):
    """Long-running operations supervised by the dashboard."""
    DOWNLOAD = "download"
    UPLOAD = "upload"
    TRAINING = "training"
    PREDICTION = "prediction"

    @property
    def label(self) -> str:
        """Human readable name used in event messages."""
        return self.value.capitalize()


class OperationStatus(Enum):
    """Lifecycle of a single operation run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


# Status text shown while an operation of the given kind is running
ACTIVITY_LABELS = {
    OperationKind.DOWNLOAD: "Downloading",
    OperationKind.UPLOAD: "Uploading",
    OperationKind.TRAINING: "Training",
    OperationKind.PREDICTION: "Predicting",
}
