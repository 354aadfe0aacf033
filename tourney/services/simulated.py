"""
Simulated operation services

Deterministic progress sources that stand behind the same phase-callback
interface as the real download, upload, training and prediction services.
The CLI uses them when no real services are wired in, and tests inject fixed
progress sequences through them.
"""

import asyncio
import logging
import random
from typing import Optional, Sequence, Dict, Any, Callable, Awaitable, Tuple

from tourney.dashboard.kinds import OperationKind
from tourney.dashboard.operations import PhaseCallbacks, OperationService

logger = logging.getLogger(__name__)

DEFAULT_STEPS = 20
DEFAULT_STEP_DELAY = 0.1

# Simulated dataset sizes in MB, used for transfer metadata
_DATASET_SIZES_MB = {
    'train.parquet': 800.0,
    'validation.parquet': 200.0,
    'live.parquet': 150.0,
}


class SimulatedOperation:
    """
    Progress source for one operation kind

    Modes:
    - artifacts given: one segment per artifact, reporting start/progress/artifact
      for each (download style)
    - progress_sequence given: reports exactly those values in order
    - otherwise: ``steps`` evenly spaced progress reports with per-kind metadata

    Example:
        download = SimulatedOperation(
            OperationKind.DOWNLOAD,
            artifacts=['train.parquet', 'validation.parquet', 'live.parquet'],
            step_delay=0.05
        )
        services = {OperationKind.DOWNLOAD: download}
    """

    def __init__(
        self,
        kind: OperationKind,
        steps: int = DEFAULT_STEPS,
        step_delay: float = DEFAULT_STEP_DELAY,
        artifacts: Sequence[str] = (),
        progress_sequence: Optional[Sequence[float]] = None,
        model: Optional[str] = None,
        total_rows: int = 5000,
        fail_after: Optional[int] = None,
        fail_rate: float = 0.0,
        error: Optional[Exception] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize simulated operation

        Args:
            kind: Operation kind being simulated
            steps: Number of progress reports (per artifact in artifact mode)
            step_delay: Seconds between reports
            artifacts: Artifact names produced in order
            progress_sequence: Exact progress values to report
            model: Model name reported in metadata
            total_rows: Row count for prediction metadata
            fail_after: Raise after this many progress reports
            fail_rate: Probability that any single report raises instead
            error: Exception raised on a simulated failure
            sleep: Awaitable sleep function (injectable for tests)
        """
        if steps < 1:
            raise ValueError(f"steps must be at least 1, got {steps}")
        self.kind = kind
        self.steps = steps
        self.step_delay = step_delay
        self.artifacts = list(artifacts)
        self.progress_sequence = list(progress_sequence) if progress_sequence is not None else None
        self.model = model
        self.total_rows = total_rows
        self.fail_after = fail_after
        self.fail_rate = fail_rate
        self._random = random.Random()
        self.error = error
        self._sleep = sleep
        self.runs = 0

    async def __call__(self, callbacks: PhaseCallbacks) -> None:
        self.runs += 1
        self._reports = 0
        logger.debug(f"Simulated {self.kind.label} run {self.runs} started")

        if self.artifacts:
            await self._run_artifacts(callbacks)
        else:
            callbacks.start({'model': self.model} if self.model else {})
            if self.progress_sequence is not None:
                for value in self.progress_sequence:
                    await self._report(callbacks, value, {})
            else:
                for step in range(1, self.steps + 1):
                    await self._report(callbacks, step / self.steps * 100.0, self._metadata(step))

        callbacks.complete()

    async def _run_artifacts(self, callbacks: PhaseCallbacks) -> None:
        count = len(self.artifacts)
        for index, artifact in enumerate(self.artifacts):
            total_mb = _DATASET_SIZES_MB.get(artifact, 100.0)
            callbacks.start({'file': artifact, 'total_mb': total_mb})
            for step in range(1, self.steps + 1):
                overall = (index + step / self.steps) / count * 100.0
                metadata = {
                    'file': artifact,
                    'current_mb': round(step / self.steps * total_mb, 1),
                    'total_mb': total_mb,
                    'speed_mb': round(total_mb / (self.steps * max(self.step_delay, 0.01)), 1),
                }
                await self._report(callbacks, overall, metadata)
            callbacks.artifact(artifact)

    async def _report(self, callbacks: PhaseCallbacks, value: float, metadata: Dict[str, Any]) -> None:
        exhausted = self.fail_after is not None and self._reports >= self.fail_after
        if exhausted or (self.fail_rate and self._random.random() < self.fail_rate):
            raise self.error or RuntimeError(f"Simulated {self.kind.label.lower()} failure")
        callbacks.progress(value, metadata)
        self._reports += 1
        await self._sleep(self.step_delay)

    def _metadata(self, step: int) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        if self.model:
            metadata['model'] = self.model
        if self.kind is OperationKind.TRAINING:
            metadata['epoch'] = step
            metadata['total_epochs'] = self.steps
            metadata['loss'] = round(1.0 / (1.0 + step), 4)
        elif self.kind is OperationKind.PREDICTION:
            metadata['rows'] = int(step / self.steps * self.total_rows)
            metadata['total_rows'] = self.total_rows
        elif self.kind is OperationKind.UPLOAD:
            metadata['file'] = 'predictions.csv'
        return metadata


class SimulatedRefresher:
    """Stand-in for the model performance refresher."""

    def __init__(self, models: Sequence[str] = (), delay: float = DEFAULT_STEP_DELAY):
        self.models = list(models)
        self.delay = delay
        self.calls = 0

    async def __call__(self) -> Optional[str]:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return f"{len(self.models)} model(s) updated"


def build_simulated_services(config: dict) -> Tuple[Dict[OperationKind, OperationService], SimulatedRefresher]:
    """
    Build simulated services from the 'simulation' and 'auto_train' config sections

    Args:
        config: Loaded configuration

    Returns:
        Tuple of (services by kind, performance refresher)
    """
    simulation = config.get('simulation', {})
    steps = simulation.get('steps', DEFAULT_STEPS)
    delay = simulation.get('step_delay', DEFAULT_STEP_DELAY)
    fail_rate = simulation.get('fail_rate', 0.0)
    models = simulation.get('models', []) or ['example_model']
    artifacts = config.get('auto_train', {}).get('required_artifacts', []) or ['train.parquet']

    services: Dict[OperationKind, OperationService] = {
        OperationKind.DOWNLOAD: SimulatedOperation(
            OperationKind.DOWNLOAD, steps=steps, step_delay=delay, fail_rate=fail_rate, artifacts=artifacts
        ),
        OperationKind.UPLOAD: SimulatedOperation(
            OperationKind.UPLOAD, steps=steps, step_delay=delay, fail_rate=fail_rate, model=models[0]
        ),
        OperationKind.TRAINING: SimulatedOperation(
            OperationKind.TRAINING, steps=steps, step_delay=delay, fail_rate=fail_rate, model=models[0]
        ),
        OperationKind.PREDICTION: SimulatedOperation(
            OperationKind.PREDICTION, steps=steps, step_delay=delay, fail_rate=fail_rate, model=models[0]
        ),
    }
    return services, SimulatedRefresher(models, delay=delay)
