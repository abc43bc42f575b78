"""Tests for parsing YouTube API items into value types."""

from tubewatch.youtube.schemas import (
    parse_channel,
    parse_tags,
    parse_video,
    parse_videos,
)


def _search_item(video_id="abc123", **snippet):
    base = {
        "title": "Lofi beats",
        "description": "beats to relax to",
        "channelTitle": "Lofi Girl",
        "channelId": "UCSJ4gkVC6NrvII8umztf0Ow",
        "thumbnails": {"default": {"url": "https://i.ytimg.com/vi/abc123/default.jpg"}},
    }
    base.update(snippet)
    return {"kind": "youtube#searchResult", "id": {"kind": "youtube#video", "videoId": video_id}, "snippet": base}


class TestParseVideo:
    def test_search_result(self):
        video = parse_video(_search_item())

        assert video.video_id == "abc123"
        assert video.title == "Lofi beats"
        assert video.channel_title == "Lofi Girl"
        assert video.thumbnail_url == "https://i.ytimg.com/vi/abc123/default.jpg"
        assert video.video_url == "https://www.youtube.com/watch?v=abc123"
        assert video.is_deliverable

    def test_string_id(self):
        item = {"id": "xyz", "snippet": {"title": "From videos.list"}}
        assert parse_video(item).video_id == "xyz"

    def test_missing_fields_use_defaults(self):
        video = parse_video({"id": {"videoId": "v1"}, "snippet": {}})

        assert video.title == "No Title"
        assert video.channel_title == "Unknown Channel"
        assert video.channel_id == "Unknown Channel ID"
        assert video.description == ""
        assert video.thumbnail_url == ""

    def test_missing_id_is_not_deliverable(self):
        video = parse_video({"id": {"kind": "youtube#channel"}, "snippet": {"title": "A channel"}})

        assert video.video_id is None
        assert video.is_deliverable is False

    def test_empty_item(self):
        assert parse_video({}) is None
        assert parse_video(None) is None

    def test_to_dict(self):
        data = parse_video(_search_item()).to_dict()
        assert data["video_id"] == "abc123"
        assert set(data) == {
            "title", "description", "channel_title", "channel_id",
            "thumbnail_url", "video_id", "video_url",
        }


class TestParseCollections:
    def test_parse_videos_preserves_order_and_skips_empty(self):
        videos = parse_videos([_search_item("b"), {}, _search_item("a")])
        assert [v.video_id for v in videos] == ["b", "a"]

    def test_parse_videos_none(self):
        assert parse_videos(None) == []

    def test_parse_tags(self):
        items = [{"id": "v1", "snippet": {"tags": ["jazz", "piano"]}}]
        assert parse_tags(items) == ["jazz", "piano"]

    def test_parse_tags_absent(self):
        assert parse_tags([]) == []
        assert parse_tags([{"id": "v1", "snippet": {}}]) == []

    def test_parse_channel(self):
        item = {
            "id": "UC1",
            "snippet": {
                "title": "Jazz Channel",
                "description": "Only jazz",
                "customUrl": "@jazz",
                "publishedAt": "2015-01-01T00:00:00Z",
                "thumbnails": {"default": {"url": "https://yt3.ggpht.com/jazz.jpg"}},
            },
        }
        profile = parse_channel("UC1", item)

        assert profile.title == "Jazz Channel"
        assert profile.custom_url == "@jazz"
        assert profile.thumbnail_url == "https://yt3.ggpht.com/jazz.jpg"
        assert profile.videos == []
