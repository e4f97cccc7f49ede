"""Watch-history playlist items -> Activity rows."""
from __future__ import annotations

from datetime import datetime

from apps.backend.utils.timeparse import to_local_naive

ACTIVITY_TYPE = "video_watched"


def map_playlist_item(item: dict, user_id: str, source_id: str | None) -> dict:
    snippet = item.get("snippet") or {}
    details = item.get("contentDetails") or {}
    channel = snippet.get("channelTitle")
    video_id = details.get("videoId") or (snippet.get("resourceId") or {}).get("videoId")
    return {
        "user_id": user_id,
        "source_id": source_id,
        "type": ACTIVITY_TYPE,
        "title": snippet.get("title") or "Unknown Video",
        "description": f"Watched video from {channel or 'Unknown Channel'}",
        "metadata_json": {
            "videoId": video_id,
            "url": f"https://www.youtube.com/watch?v={video_id}" if video_id else None,
            "channelName": channel,
            "channelId": snippet.get("channelId"),
            "thumbnails": snippet.get("thumbnails"),
            "publishedAt": snippet.get("publishedAt"),
            "addedToPlaylistAt": snippet.get("publishedAt"),
        },
        "timestamp": to_local_naive(snippet.get("publishedAt")) or datetime.now(),
        # Playlist item id keeps repeated syncs from inserting the same video twice.
        "external_id": item.get("id") or video_id,
    }
