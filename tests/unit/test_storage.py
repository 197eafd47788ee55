import pytest
import threading
from pathlib import Path
from scenecut.domain.models import ClipDescriptor, MediaMetadata, VideoSource
from scenecut.infrastructure.storage import InMemoryClipStore, OutputLayout

METADATA = MediaMetadata(duration_ms=10000, codec="h264", width=1920, height=1080)


def make_clips(layout, source, ranges):
    return [
        ClipDescriptor(
            scene_index=i,
            start_ms=start,
            end_ms=end,
            clip_path=layout.clip_path(source, i),
            thumbnail_path=layout.thumbnail_path(source, i),
        )
        for i, (start, end) in enumerate(ranges)
    ]


def test_layout_paths(tmp_path):
    layout = OutputLayout(tmp_path / "uploads")
    source = VideoSource(video_id="1", path=Path("/incoming/3f2a9c.mp4"))

    assert layout.clip_path(source, 0) == tmp_path / "uploads" / "clips" / "3f2a9c_scene_1.mp4"
    assert layout.thumbnail_path(source, 3) == tmp_path / "uploads" / "thumbnails" / "3f2a9c_scene_4.jpg"


def test_layout_ensure_dirs(tmp_path):
    layout = OutputLayout(tmp_path / "uploads")
    layout.ensure_dirs()
    layout.ensure_dirs()

    assert layout.clips_dir.is_dir()
    assert layout.thumbnails_dir.is_dir()


def test_save_results_assigns_sequential_ids(clip_store, layout, video_source):
    clip_store.add_video(video_source)
    clips = make_clips(layout, video_source, [(0, 2000), (2300, 7000)])

    stored = clip_store.save_results(video_source, METADATA, clips)

    assert [s.id for s in stored] == [1, 2]
    assert stored[0].url == "/api/clips/1/stream"
    assert stored[1].thumbnail_url == "/api/clips/2/thumbnail"
    assert clip_store.get_clip(2).clip.start_ms == 2300
    video = clip_store.get_video("1")
    assert video.processing_status == "completed"
    assert video.metadata == METADATA


def test_save_results_replaces_previous_run(clip_store, layout, video_source):
    clip_store.save_results(video_source, METADATA, make_clips(layout, video_source, [(0, 1000), (1000, 2000)]))
    stored = clip_store.save_results(video_source, METADATA, make_clips(layout, video_source, [(0, 5000)]))

    assert [s.id for s in stored] == [3]
    assert [s.id for s in clip_store.get_clips("1")] == [3]
    assert clip_store.get_clip(1) is None


def test_get_clips_sorted_by_scene_index(clip_store, layout, video_source):
    clips = make_clips(layout, video_source, [(0, 1000), (1000, 2000), (2000, 3000)])
    clip_store.save_results(video_source, METADATA, list(reversed(clips)))

    assert [s.clip.scene_index for s in clip_store.get_clips("1")] == [0, 1, 2]


def test_get_clips_scoped_to_video(clip_store, layout, tmp_path):
    a = VideoSource(video_id="a", path=tmp_path / "a.mp4")
    b = VideoSource(video_id="b", path=tmp_path / "b.mp4")
    clip_store.save_results(a, METADATA, make_clips(layout, a, [(0, 1000)]))
    clip_store.save_results(b, METADATA, make_clips(layout, b, [(0, 1000), (1000, 2000)]))

    assert len(clip_store.get_clips("a")) == 1
    assert len(clip_store.get_clips("b")) == 2
    assert clip_store.get_clips("c") == []


def test_set_status(clip_store, video_source):
    clip_store.add_video(video_source)
    assert clip_store.get_video("1").processing_status == "pending"

    clip_store.set_status("1", "processing")
    assert clip_store.get_video("1").processing_status == "processing"


def test_set_status_unknown_video(clip_store):
    with pytest.raises(KeyError):
        clip_store.set_status("missing", "error")


def test_concurrent_saves_get_unique_ids(clip_store, layout, tmp_path):
    sources = [VideoSource(video_id=str(i), path=tmp_path / f"{i}.mp4") for i in range(8)]

    def save(source):
        clip_store.save_results(source, METADATA, make_clips(layout, source, [(0, 1000), (1000, 2000)]))

    threads = [threading.Thread(target=save, args=(s,)) for s in sources]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    ids = [c.id for s in sources for c in clip_store.get_clips(s.video_id)]
    assert sorted(ids) == list(range(1, 17))
