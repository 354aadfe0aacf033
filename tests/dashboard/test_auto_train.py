import itertools
import threading

import pytest

from tourney.dashboard.auto_train import AutoTrainCoordinator
from tourney.dashboard.kinds import OperationKind
from tourney.dashboard.state import DashboardState

REQUIRED = ['train.parquet', 'validation.parquet', 'live.parquet']


@pytest.fixture
def triggers():
    return []


@pytest.fixture
def coordinator(state, triggers):
    return AutoTrainCoordinator(state, lambda: triggers.append('train'))


@pytest.mark.unit
@pytest.mark.parametrize("order", list(itertools.permutations(REQUIRED)))
def test_all_required_artifacts_fire_exactly_once(coordinator, triggers, order):
    results = [coordinator.observe(artifact) for artifact in order]

    assert results == [False, False, True]
    assert triggers == ['train']
    assert coordinator.completed() == frozenset()
    assert coordinator.cycles_fired == 1


@pytest.mark.unit
@pytest.mark.parametrize("pair", list(itertools.combinations(REQUIRED, 2)))
def test_two_of_three_never_fire(coordinator, triggers, pair):
    for artifact in pair:
        coordinator.observe(artifact)

    assert triggers == []
    assert coordinator.completed() == frozenset(pair)
    assert len(coordinator.pending()) == 1


@pytest.mark.unit
def test_duplicate_completions_do_not_fire(coordinator, triggers):
    for _ in range(3):
        coordinator.observe('train.parquet')
    coordinator.observe('validation.parquet')
    assert triggers == []


@pytest.mark.unit
def test_second_cycle_needs_all_artifacts_again(coordinator, triggers):
    for artifact in REQUIRED:
        coordinator.observe(artifact)
    coordinator.observe('train.parquet')
    coordinator.observe('live.parquet')
    assert triggers == ['train']

    coordinator.observe('validation.parquet')
    assert triggers == ['train', 'train']


@pytest.mark.unit
def test_unrequired_artifacts_are_ignored(coordinator, state):
    assert coordinator.observe('features.json') is False
    assert coordinator.completed() == frozenset()
    assert coordinator.completed() <= state.auto_train.required_artifacts


@pytest.mark.unit
def test_empty_required_set_never_fires():
    state = DashboardState(required_artifacts=[])
    fired = []
    coordinator = AutoTrainCoordinator(state, lambda: fired.append(1))

    coordinator.observe('train.parquet')
    assert fired == []
    assert coordinator.describe() is None


@pytest.mark.unit
def test_disabled_accumulates_and_fires_on_next_completion_after_enable(coordinator, triggers, state):
    coordinator.set_enabled(False)
    for artifact in REQUIRED:
        coordinator.observe(artifact)

    assert triggers == []
    assert coordinator.completed() == frozenset(REQUIRED)

    coordinator.set_enabled(True)
    assert triggers == []
    coordinator.observe('live.parquet')
    assert triggers == ['train']
    assert "Auto-training disabled" in [e.message for e in state.events.all()]


@pytest.mark.unit
def test_only_download_artifacts_count(coordinator, triggers):
    for artifact in REQUIRED:
        coordinator.on_artifact(OperationKind.PREDICTION, artifact)
    assert triggers == []
    assert coordinator.completed() == frozenset()


@pytest.mark.unit
def test_fire_emits_event(coordinator, state):
    for artifact in REQUIRED:
        coordinator.on_artifact(OperationKind.DOWNLOAD, artifact)
    assert state.events.recent(1)[0].message == "All downloads complete - starting automatic training"


@pytest.mark.unit
def test_trigger_failure_becomes_error_event(state):
    def broken():
        raise RuntimeError("no training service")

    coordinator = AutoTrainCoordinator(state, broken)
    for artifact in REQUIRED:
        coordinator.observe(artifact)

    last = state.events.recent(1)[0]
    assert last.kind == 'error'
    assert "no training service" in last.message


@pytest.mark.unit
def test_describe_reports_progress(coordinator):
    coordinator.observe('train.parquet')
    assert coordinator.describe() == "Auto-train ON: 1/3 artifacts ready"


@pytest.mark.unit
def test_concurrent_completions_fire_once_per_cycle(state):
    fired = []
    fired_lock = threading.Lock()

    def trigger():
        with fired_lock:
            fired.append(1)

    coordinator = AutoTrainCoordinator(state, trigger)
    subset_violations = []
    cycles = 50
    barrier = threading.Barrier(len(REQUIRED))

    def worker(artifact):
        for _ in range(cycles):
            barrier.wait()
            coordinator.observe(artifact)
            completed = coordinator.completed()
            if not completed <= state.auto_train.required_artifacts:
                subset_violations.append(completed)
            barrier.wait()

    threads = [threading.Thread(target=worker, args=(a,)) for a in REQUIRED]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert subset_violations == []
    assert len(fired) == cycles
    assert coordinator.cycles_fired == cycles
    assert coordinator.completed() == frozenset()
