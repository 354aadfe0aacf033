import pytest

from tourney.config.loader import DEFAULT_CONFIG
from tourney.dashboard.kinds import OperationKind
from tourney.dashboard.operations import PhaseCallbacks
from tourney.services.simulated import SimulatedOperation, SimulatedRefresher, build_simulated_services


async def _no_sleep(_delay):
    return None


def _callbacks(kind):
    published = []
    return PhaseCallbacks(kind, 1, published.append), published


@pytest.mark.unit
@pytest.mark.asyncio
async def test_download_reports_each_artifact_in_order():
    callbacks, published = _callbacks(OperationKind.DOWNLOAD)
    service = SimulatedOperation(
        OperationKind.DOWNLOAD, steps=2, artifacts=['train.parquet', 'live.parquet'], sleep=_no_sleep
    )

    await service(callbacks)

    phases = [(e.phase, e.artifact) for e in published if e.phase != 'progress']
    assert phases == [
        ('start', None), ('artifact', 'train.parquet'),
        ('start', None), ('artifact', 'live.parquet'),
        ('complete', None),
    ]
    progress = [e.progress for e in published if e.phase == 'progress']
    assert progress == [25.0, 50.0, 75.0, 100.0]
    assert published[0].metadata['file'] == 'train.parquet'


@pytest.mark.unit
@pytest.mark.asyncio
async def test_progress_sequence_is_reported_verbatim():
    callbacks, published = _callbacks(OperationKind.TRAINING)
    service = SimulatedOperation(OperationKind.TRAINING, progress_sequence=[0, 40, 30, 60, 100], sleep=_no_sleep)

    await service(callbacks)

    assert [e.progress for e in published if e.phase == 'progress'] == [0, 40, 30, 60, 100]
    assert published[-1].phase == 'complete'
    assert callbacks.finished is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_training_metadata_has_epoch_and_loss():
    callbacks, published = _callbacks(OperationKind.TRAINING)
    service = SimulatedOperation(OperationKind.TRAINING, steps=4, model='lgbm', sleep=_no_sleep)

    await service(callbacks)

    last = [e for e in published if e.phase == 'progress'][-1]
    assert last.metadata['epoch'] == 4
    assert last.metadata['total_epochs'] == 4
    assert last.metadata['model'] == 'lgbm'
    assert last.metadata['loss'] == pytest.approx(0.2)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fail_after_raises_configured_error():
    callbacks, published = _callbacks(OperationKind.PREDICTION)
    service = SimulatedOperation(
        OperationKind.PREDICTION, steps=5, fail_after=2, error=ValueError("bad rows"), sleep=_no_sleep
    )

    with pytest.raises(ValueError, match="bad rows"):
        await service(callbacks)
    assert len([e for e in published if e.phase == 'progress']) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fail_rate_one_always_fails():
    callbacks, _ = _callbacks(OperationKind.UPLOAD)
    service = SimulatedOperation(OperationKind.UPLOAD, steps=3, fail_rate=1.0, sleep=_no_sleep)
    with pytest.raises(RuntimeError, match="Simulated upload failure"):
        await service(callbacks)


@pytest.mark.unit
def test_rejects_zero_steps():
    with pytest.raises(ValueError):
        SimulatedOperation(OperationKind.UPLOAD, steps=0)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresher_summarizes_models():
    refresher = SimulatedRefresher(['a', 'b'], delay=0)
    assert await refresher() == "2 model(s) updated"
    assert refresher.calls == 1


@pytest.mark.unit
def test_build_simulated_services_covers_every_kind():
    services, refresher = build_simulated_services(DEFAULT_CONFIG)

    assert set(services) == set(OperationKind)
    assert services[OperationKind.DOWNLOAD].artifacts == DEFAULT_CONFIG['auto_train']['required_artifacts']
    assert services[OperationKind.TRAINING].model == 'example_model'
    assert isinstance(refresher, SimulatedRefresher)
