from __future__ import annotations

import threading
from typing import Dict, List

from stockprompt_service import mutations
from stockprompt_service.batch import BatchState, create_units
from stockprompt_service.config import GenerationConfigStore
from stockprompt_service.errors import GenerationError
from stockprompt_service.models import Asset, TargetModel, UnitStatus
from stockprompt_service.queue_worker import GENERIC_FAILURE_MESSAGE, QueueRunner
from stockprompt_service.refinement import RefinementController
from tests.fakes import FakeBackend, jpeg_asset


def _setup(names, backend):
    state = BatchState()
    units = create_units([jpeg_asset(n) for n in names])
    state.append(units)
    store = GenerationConfigStore()
    return state, units, store, QueueRunner(state, backend, store)


def test_three_jpegs_complete_strictly_in_admission_order():
    observed: List[Dict[str, str]] = []
    processing_flags: List[bool] = []
    backend = FakeBackend()
    state, units, store, runner = _setup(["1.jpg", "2.jpg", "3.jpg"], backend)

    def observe(asset: Asset) -> None:
        observed.append({u.asset.filename: u.status.value for u in state.units})
        processing_flags.append(state.is_processing)

    backend.on_generate = observe

    assert state.is_processing is False
    summary = runner.run([u.id for u in units])

    assert observed == [
        {"1.jpg": "processing", "2.jpg": "pending", "3.jpg": "pending"},
        {"1.jpg": "completed", "2.jpg": "processing", "3.jpg": "pending"},
        {"1.jpg": "completed", "2.jpg": "completed", "3.jpg": "processing"},
    ]
    assert processing_flags == [True, True, True]
    assert state.is_processing is False
    assert summary.completed == 3
    assert [name for name, _ in backend.generate_calls] == ["1.jpg", "2.jpg", "3.jpg"]


def test_failure_is_isolated_to_its_unit():
    backend = FakeBackend(fail_on={"2.jpg"})
    state, units, _, runner = _setup(["1.jpg", "2.jpg", "3.jpg"], backend)

    summary = runner.run([u.id for u in units])

    first, second, third = (state.get_unit(u.id) for u in units)
    assert first.status is UnitStatus.COMPLETED
    assert third.status is UnitStatus.COMPLETED
    assert second.status is UnitStatus.ERROR
    assert second.error_message == "Backend rejected 2.jpg"
    assert second.result is None
    assert (summary.completed, summary.failed) == (2, 1)


def test_failure_without_message_gets_generic_text():
    class SilentFailure(FakeBackend):
        def generate(self, asset, config):
            raise GenerationError()

    state, units, _, runner = _setup(["a.jpg"], SilentFailure())

    runner.run([units[0].id])

    assert state.get_unit(units[0].id).error_message == GENERIC_FAILURE_MESSAGE


def test_result_is_tagged_with_target_model():
    state, units, store, runner = _setup(["a.jpg"], FakeBackend())
    store.update(target_model=TargetModel.FIREFLY)

    runner.run([units[0].id])

    assert state.get_unit(units[0].id).result.generated_for_model is TargetModel.FIREFLY


def test_config_is_read_when_each_unit_starts():
    backend = FakeBackend()
    state, units, store, runner = _setup(["1.jpg", "2.jpg"], backend)

    def switch_model(asset: Asset) -> None:
        if asset.filename == "1.jpg":
            store.update(target_model=TargetModel.DALLE)

    backend.on_generate = switch_model
    runner.run([u.id for u in units])

    assert [cfg.target_model for _, cfg in backend.generate_calls] == [TargetModel.MIDJOURNEY, TargetModel.DALLE]
    assert state.get_unit(units[0].id).result.generated_for_model is TargetModel.MIDJOURNEY
    assert state.get_unit(units[1].id).result.generated_for_model is TargetModel.DALLE


def test_clear_during_run_makes_remaining_units_inert():
    backend = FakeBackend()
    state, units, _, runner = _setup(["1.jpg", "2.jpg"], backend)
    backend.on_generate = lambda asset: state.clear()

    summary = runner.run([u.id for u in units])

    assert [name for name, _ in backend.generate_calls] == ["1.jpg"]
    assert state.units == ()
    assert state.is_processing is False
    assert summary.skipped == 1


def test_only_pending_units_are_processed():
    backend = FakeBackend()
    state, units, _, runner = _setup(["1.jpg"], backend)
    runner.run([units[0].id])

    runner.run([units[0].id])

    assert len(backend.generate_calls) == 1


def test_run_async_completes_on_worker_thread():
    state, units, _, runner = _setup(["1.jpg", "2.jpg"], FakeBackend())

    worker = runner.run_async([u.id for u in units])
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert all(u.status is UnitStatus.COMPLETED for u in state.units)


def test_completed_unit_can_be_edited_and_refined_while_a_pass_drains():
    backend = FakeBackend()
    state, units, store, runner = _setup(["1.jpg", "2.jpg", "3.jpg"], backend)
    first, second, third = (u.id for u in units)
    runner.run([first])

    paused, resume = threading.Event(), threading.Event()

    def hold_second(asset: Asset) -> None:
        if asset.filename == "2.jpg":
            paused.set()
            resume.wait(timeout=5)

    backend.on_generate = hold_second
    worker = runner.run_async([second, third])
    assert paused.wait(timeout=5)

    assert state.is_processing
    assert state.get_unit(second).status is UnitStatus.PROCESSING
    assert mutations.add_keyword(state, first, "mist") is True
    refined = RefinementController(state, backend, store).refine(first, "add fog", "4:3")

    resume.set()
    worker.join(timeout=5)

    result = state.get_unit(first).result
    assert result == refined
    assert "mist" in result.keywords
    assert result.prompt.endswith("(add fog)")
    assert [u.status for u in state.units] == [UnitStatus.COMPLETED] * 3
    assert [config.aspect_ratio for _, config in backend.generate_calls] == ["16:9", "16:9", "4:3"]
    assert state.is_processing is False
