"""Export to disk: filenames, presets and refusals."""

import pytest
from PIL import Image

from conftest import make_png
from mockupgen.codec import to_data_uri
from mockupgen.errors import ErrorKind, ExportError
from mockupgen.exporter import export_filename, export_slot, resolve_quality, save_original
from mockupgen.slots import ResultSlot, SlotStatus


@pytest.fixture
def done_slot():
    image = to_data_uri(make_png(320, 180), "image/png")
    return ResultSlot(identity=42, position=1, status=SlotStatus.SUCCEEDED, image=image)


def test_export_writes_named_png_at_width(done_slot, tmp_path):
    path = export_slot(done_slot, "FullHD", tmp_path / "out")

    assert path == tmp_path / "out" / "mockup-42-FullHD.png"
    with Image.open(path) as img:
        assert img.size == (1920, 1080)


def test_quality_label_is_case_insensitive(done_slot, tmp_path):
    path = export_slot(done_slot, "4k", tmp_path)

    assert path.name == "mockup-42-4K.png"
    assert resolve_quality(" hd ") == "HD"


def test_same_slot_same_quality_overwrites(done_slot, tmp_path):
    first = export_slot(done_slot, "HD", tmp_path)
    second = export_slot(done_slot, "HD", tmp_path)

    assert first == second
    assert export_filename(done_slot, "HD") == first.name
    assert len(list(tmp_path.iterdir())) == 1


def test_unknown_quality_is_refused(done_slot, tmp_path):
    with pytest.raises(ExportError):
        export_slot(done_slot, "8K", tmp_path)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize(
    "slot",
    [
        ResultSlot(identity=1, position=0, status=SlotStatus.LOADING),
        ResultSlot(identity=1, position=0).with_error("Generation failed.", ErrorKind.UNKNOWN),
    ],
)
def test_only_succeeded_slots_export(slot, tmp_path):
    with pytest.raises(ExportError):
        export_slot(slot, "HD", tmp_path)
    with pytest.raises(ExportError):
        save_original(slot, tmp_path)


def test_save_original_keeps_bytes_and_extension(tmp_path):
    slot = ResultSlot(
        identity=7,
        position=0,
        status=SlotStatus.SUCCEEDED,
        image=to_data_uri(b"jpeg-bytes", "image/jpeg"),
    )

    path = save_original(slot, tmp_path)

    assert path.name == "mockup-7.jpg"
    assert path.read_bytes() == b"jpeg-bytes"
