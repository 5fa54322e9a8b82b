import pycsi as pc
from pycsi import _shared


def test_all_exports_resolve():
    for name in pc.__all__:
        assert hasattr(pc, name), name


def test_config_is_shared_module_dict():
    assert pc.CONFIG is _shared.CONFIG


def test_builder_defaults_follow_config(monkeypatch):
    monkeypatch.setitem(_shared.CONFIG, "min_shift", 12)
    monkeypatch.setitem(_shared.CONFIG, "depth", 6)
    index = pc.IndexBuilder().build()
    assert (index.min_shift, index.depth) == (12, 6)


def test_error_hierarchy():
    assert issubclass(pc.CsiFormatError, ValueError)
    assert issubclass(pc.CsiRangeError, ValueError)
    assert issubclass(pc.CsiIOError, OSError)
    for cls in (pc.CsiFormatError, pc.CsiRangeError, pc.CsiIOError):
        assert issubclass(cls, pc.CsiError)
