"""
Music Endpoints for the Habit Tracker backend

GET /api/music             - focus tracks available under the music root
GET /api/music/{track_id}  - one track

The audio itself is served statically from ``/music/<filename>``.
"""

import asyncio
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from habit_tracker.api.deps import get_settings
from habit_tracker.api.schemas import TrackListResponse, TrackResponse
from habit_tracker.auth import get_current_user_id
from habit_tracker.config import Settings

router = APIRouter(tags=["music"])

AUDIO_EXTENSIONS = {".mp3", ".ogg", ".wav", ".m4a", ".flac"}


def _title_from_stem(stem: str) -> str:
    words = stem.replace("_", " ").replace("-", " ").split()
    return " ".join(w.capitalize() for w in words) or stem


def scan_tracks(music_dir: str) -> List[TrackResponse]:
    """List audio files directly inside ``music_dir``, sorted by title."""
    if not os.path.isdir(music_dir):
        return []

    tracks = []
    for entry in os.scandir(music_dir):
        if not entry.is_file() or entry.name.startswith("."):
            continue
        stem, ext = os.path.splitext(entry.name)
        if ext.lower() not in AUDIO_EXTENSIONS:
            continue
        tracks.append(TrackResponse(
            id=stem,
            title=_title_from_stem(stem),
            filename=entry.name,
            url=f"/music/{entry.name}",
            size_bytes=entry.stat().st_size,
        ))
    tracks.sort(key=lambda t: (t.title.lower(), t.filename))
    return tracks


def find_track(music_dir: str, track_id: str) -> Optional[TrackResponse]:
    for track in scan_tracks(music_dir):
        if track.id == track_id:
            return track
    return None


@router.get("", response_model=TrackListResponse)
async def list_tracks(
    _user_id: int = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    tracks = await asyncio.to_thread(scan_tracks, settings.music_dir)
    return TrackListResponse(tracks=tracks, total=len(tracks))


@router.get("/{track_id}", response_model=TrackResponse)
async def get_track(
    track_id: str,
    _user_id: int = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    track = await asyncio.to_thread(find_track, settings.music_dir, track_id)
    if track is None:
        raise HTTPException(status_code=404, detail="Track not found")
    return track
