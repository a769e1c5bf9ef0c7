from __future__ import annotations

import pytest

from stockprompt_service import assist
from stockprompt_service.batch import BatchState, create_units
from stockprompt_service.errors import GenerationError, PreviewError, UnitStateError
from stockprompt_service.models import Asset, UnitStatus
from tests.fakes import FakeBackend, jpeg_asset, make_metadata


@pytest.fixture
def setup():
    state = BatchState()
    units = create_units([jpeg_asset("done.jpg"), Asset("raw.pdf", "application/pdf", b"%PDF")])
    state.append(units)
    state.update_unit(units[0].id, status=UnitStatus.COMPLETED, result=make_metadata())
    return state, [u.id for u in units], FakeBackend()


def test_tag_point_returns_suggestions_and_rounds_coordinates(setup):
    state, (done, _), backend = setup
    before = state.get_unit(done)

    keywords = assist.tag_point(state, backend, done, 42.6, 10.2)

    assert keywords == ["red apple", "fruit", "harvest"]
    assert backend.point_calls == [("done.jpg", 43, 10)]
    assert state.get_unit(done) == before


def test_tag_point_failure_degrades_to_empty(setup):
    state, (done, _), backend = setup
    backend.point_error = GenerationError("bad response")

    assert assist.tag_point(state, backend, done, 50, 50) == []


def test_tag_point_rejects_out_of_range_coordinates(setup):
    state, (done, _), backend = setup

    with pytest.raises(ValueError):
        assist.tag_point(state, backend, done, 101, 5)
    assert backend.point_calls == []


def test_tag_point_needs_an_image_asset(setup):
    state, (_, pdf_unit), backend = setup

    with pytest.raises(UnitStateError):
        assist.tag_point(state, backend, pdf_unit, 5, 5)


def test_preview_renders_current_prompt(setup):
    state, (done, _), backend = setup

    image = assist.render_preview(state, backend, done, "3:2")

    assert image.as_data_url().startswith("data:image/png;base64,")
    assert backend.preview_calls == [(make_metadata().prompt, "3:2")]


def test_preview_skipped_for_empty_prompt(setup):
    state, (done, _), backend = setup
    state.update_unit(done, result=make_metadata(prompt="  "))

    assert assist.render_preview(state, backend, done, "1:1") is None
    assert backend.preview_calls == []


def test_preview_failure_is_reported_without_touching_unit(setup):
    state, (done, _), backend = setup
    before = state.get_unit(done)
    backend.preview_error = RuntimeError("image model unavailable")

    with pytest.raises(PreviewError):
        assist.render_preview(state, backend, done, "1:1")
    assert state.get_unit(done) == before


def test_seo_variants_for_completed_unit(setup):
    state, (done, _), backend = setup

    variants = assist.suggest_seo_variants(state, backend, done)

    assert variants.descriptive.title.startswith(make_metadata().title)
    assert variants.commercial.title == "Fresh from the orchard"
