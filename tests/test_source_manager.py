from __future__ import annotations

import pytest

from turbulence2d import FlowSettings, SourceManager


def test_add_remove_scenario() -> None:
    sm = SourceManager(seed=0)
    assert sm.list() == []
    first = sm.add("vortex")
    assert first == "1"
    second = sm.add("source")
    assert second != first
    assert sm.remove("1") is True
    remaining = sm.list()
    assert [s.id for s in remaining] == [second]
    assert remaining[0].type == "source"


def test_list_length_tracks_add_and_remove() -> None:
    sm = SourceManager(seed=1)
    ids = [sm.add(t) for t in ("vortex", "sink", "uniform", "vortex")]
    assert len(set(ids)) == len(ids)
    assert len(sm.list()) == 4
    sm.remove(ids[1])
    assert len(sm.list()) == 3
    before = sm.list()
    assert sm.remove("does-not-exist") is False
    assert sm.list() == before


def test_list_keeps_insertion_order() -> None:
    sm = SourceManager(seed=2)
    ids = [sm.add("vortex") for _ in range(5)]
    assert [s.id for s in sm.list()] == ids


def test_ids_are_never_reused() -> None:
    sm = SourceManager(seed=3)
    a = sm.add("vortex")
    sm.remove(a)
    sm.clear()
    b = sm.add("vortex")
    assert b != a


def test_defaults() -> None:
    sm = SourceManager((0.0, 200.0, 0.0, 100.0), seed=4)
    sid = sm.add("sink")
    s = sm.get(sid)
    assert s is not None
    assert s.name == "Sink 1"
    assert s.strength < 0.0
    assert 0.0 <= s.x <= 200.0 and 0.0 <= s.y <= 100.0
    v = sm.get(sm.add("uniform"))
    assert v is not None and v.name == "Flow 2" and v.strength > 0.0


def test_update_changes_fields_and_reports_unknown_ids() -> None:
    sm = SourceManager(seed=5)
    sid = sm.add("uniform", 10.0, 20.0)
    assert sm.update(sid, {"strength": 3.0}, angle=400.0) is True
    s = sm.get(sid)
    assert s is not None
    assert s.strength == 3.0
    assert s.angle == pytest.approx(40.0)
    assert sm.update("nope", strength=1.0) is False
    assert sm.move(sid, 1.0, 2.0) is True
    assert (sm.get(sid).x, sm.get(sid).y) == (1.0, 2.0)  # type: ignore[union-attr]


def test_update_rejects_unknown_fields_and_id_changes() -> None:
    sm = SourceManager(seed=6)
    sid = sm.add("vortex")
    with pytest.raises(ValueError):
        sm.update(sid, colour="red")
    with pytest.raises(ValueError):
        sm.update(sid, id="99")
    # unknown ids are reported before the changes are looked at
    assert sm.update("nope", colour="red") is False
    assert sm.update("nope", id="99") is False


def test_unknown_type_is_rejected() -> None:
    with pytest.raises(ValueError):
        SourceManager().add("doublet")  # type: ignore[arg-type]


def test_find_near_prefers_last_added() -> None:
    sm = SourceManager(seed=7)
    a = sm.add("vortex", 100.0, 100.0)
    b = sm.add("source", 105.0, 100.0)
    hit = sm.find_near(102.0, 100.0)
    assert hit is not None and hit.id == b
    assert sm.find_near(300.0, 300.0) is None
    sm.remove(b)
    hit = sm.find_near(102.0, 100.0)
    assert hit is not None and hit.id == a


def test_evaluator_sees_mutations_but_snapshots_do_not() -> None:
    sm = SourceManager(seed=8)
    sid = sm.add("vortex", 0.0, 0.0, strength=10.0)
    flow = FlowSettings(enabled=False)
    before = sm.evaluator(flow=flow, intensity=0.0)
    sm.update(sid, strength=20.0)
    after = sm.evaluator(flow=flow, intensity=0.0)
    assert before.evaluate(5.0, 0.0).y == pytest.approx(2.0)
    assert after.evaluate(5.0, 0.0).y == pytest.approx(4.0)
