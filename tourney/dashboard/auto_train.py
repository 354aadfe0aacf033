"""
Auto-train coordination

Watches download artifact completions and fires a single training run once
every required artifact of the current cycle has completed, then starts a
new cycle.
"""

import logging
from typing import Callable, FrozenSet, Optional

from tourney.dashboard.kinds import OperationKind
from tourney.dashboard.state import DashboardState

logger = logging.getLogger(__name__)


class AutoTrainCoordinator:
    """
    Fires training exactly once per satisfied auto-train cycle

    The membership update, the satisfied check and the clear of the completed
    set happen in one critical section under ``state.auto_train_lock``, so two
    downloads finishing at the same instant cannot both observe a satisfied
    cycle. The training trigger itself is invoked after the lock is released.

    Artifacts that are not required are ignored, which keeps the completed
    set a subset of the required set.

    Example:
        coordinator = AutoTrainCoordinator(state, controller.trigger_training)
        tracker.add_artifact_listener(coordinator.on_artifact)
    """

    def __init__(self, state: DashboardState, trigger_training: Callable[[], object]):
        """
        Initialize coordinator

        Args:
            state: Shared dashboard state holding AutoTrainConfig
            trigger_training: Callable that starts a training run
        """
        self.state = state
        self._trigger_training = trigger_training
        self.cycles_fired = 0

    def on_artifact(self, kind: OperationKind, artifact: str) -> bool:
        """Artifact listener hook; only download artifacts count."""
        if kind is not OperationKind.DOWNLOAD:
            return False
        return self.observe(artifact)

    def observe(self, artifact: str) -> bool:
        """
        Record a completed download artifact

        Args:
            artifact: Artifact identifier, e.g. 'train.parquet'

        Returns:
            True if this completion satisfied the cycle and training was triggered
        """
        with self.state.auto_train_lock:
            config = self.state.auto_train
            if artifact not in config.required_artifacts:
                logger.debug(f"Ignoring artifact not required for auto-train: {artifact}")
                return False

            config.completed_artifacts.add(artifact)
            fire = (
                config.enabled
                and bool(config.required_artifacts)
                and config.required_artifacts <= config.completed_artifacts
            )
            if fire:
                config.completed_artifacts.clear()
                self.cycles_fired += 1
            remaining = len(config.required_artifacts - config.completed_artifacts)

        if not fire:
            logger.debug(f"Auto-train: {artifact} complete, {remaining} artifact(s) remaining")
            return False

        logger.info("All required artifacts complete - triggering training")
        self.state.events.info("All downloads complete - starting automatic training")
        try:
            self._trigger_training()
        except Exception as e:
            logger.error(f"Auto-train trigger failed: {e}", exc_info=True)
            self.state.events.error(f"Auto-train trigger failed: {e}", category='auto_train')
        return True

    def set_enabled(self, enabled: bool) -> None:
        """
        Enable or disable auto-training

        Accumulated artifacts are kept across toggles.
        """
        with self.state.auto_train_lock:
            self.state.auto_train.enabled = enabled
        state_text = "enabled" if enabled else "disabled"
        logger.info(f"Auto-training {state_text}")
        self.state.events.info(f"Auto-training {state_text}")
        self.state.request_render()

    @property
    def enabled(self) -> bool:
        with self.state.auto_train_lock:
            return self.state.auto_train.enabled

    def reset(self) -> None:
        """Discard artifacts accumulated in the current cycle."""
        with self.state.auto_train_lock:
            self.state.auto_train.completed_artifacts.clear()

    def completed(self) -> FrozenSet[str]:
        with self.state.auto_train_lock:
            return frozenset(self.state.auto_train.completed_artifacts)

    def pending(self) -> FrozenSet[str]:
        """Required artifacts not yet completed in the current cycle."""
        with self.state.auto_train_lock:
            config = self.state.auto_train
            return frozenset(config.required_artifacts - config.completed_artifacts)

    def describe(self) -> Optional[str]:
        """One-line status of the current cycle for help/status output."""
        with self.state.auto_train_lock:
            config = self.state.auto_train
            if not config.required_artifacts:
                return None
            done = len(config.completed_artifacts)
            total = len(config.required_artifacts)
            enabled = config.enabled
        return f"Auto-train {'ON' if enabled else 'OFF'}: {done}/{total} artifacts ready"
