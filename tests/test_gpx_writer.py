from datetime import datetime, timedelta, timezone

from ride_stages.gpx_writer import build_gpx_tree, format_time, write_gpx
from ride_stages.readers import read_gpx

from conftest import BASE_TIME, make_track


def test_format_time_is_utc_with_z():
    local = datetime(2024, 6, 1, 10, 0, 0, 750000, tzinfo=timezone(timedelta(hours=2)))
    assert format_time(local) == "2024-06-01T08:00:00Z"


def test_full_tree_has_metadata_and_times():
    track = make_track([100.0] * 2, eles=[10.0, 11.26, None])
    root = build_gpx_tree(track).getroot()
    assert root.get("version") == "1.1"
    assert root.find("metadata/name").text == "ride"
    assert root.find("metadata/time").text == "2024-06-01T08:00:00Z"

    trkpts = root.findall("trk/trkseg/trkpt")
    assert len(trkpts) == 3
    assert trkpts[0].get("lat") == "51.500000"
    assert trkpts[0].get("lon") == "-0.100000"
    assert trkpts[1].find("ele").text == "11.3"
    assert trkpts[2].find("ele") is None
    assert trkpts[2].find("time").text == "2024-06-01T08:00:20Z"


def test_minimal_tree_drops_metadata_and_times():
    track = make_track([100.0] * 2)
    root = build_gpx_tree(track, minimal=True).getroot()
    assert root.find("metadata") is None
    assert root.find("trk/name").text == "ride"
    for trkpt in root.iter("trkpt"):
        assert trkpt.find("time") is None


def test_written_file_reads_back(tmp_path):
    track = make_track([100.0] * 5, name="Loop", eles=[1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
    path = write_gpx(tmp_path / "out" / "loop.gpx", track)
    assert path.exists()
    assert not (tmp_path / "out" / "loop.gpx.tmp").exists()

    again = read_gpx(path)
    assert again.name == "Loop"
    assert [p.latlon for p in again] == [p.latlon for p in track]
    assert [p.ele for p in again] == [p.ele for p in track]
    assert again.start_time == BASE_TIME
