"""
Shared fixtures for the export tests.

Environment overrides are applied before `storyexport` is imported so the
config module never touches the repository's own log or exports folders.
"""

import os
import tempfile

_SCRATCH = tempfile.mkdtemp(prefix="storyexport-tests-")
os.environ.setdefault("LOG_FILE_PATH", os.path.join(_SCRATCH, "logs", "storyexport.log"))
os.environ.setdefault("EXPORTS_DIR", os.path.join(_SCRATCH, "exports"))
os.environ.setdefault("ALLOWED_HOSTS", "*")
os.environ.pop("FIREBASE_PROJECT_ID", None)
os.environ.pop("FIREBASE_CREDENTIALS_PATH", None)

from typing import Callable, Dict, List, Set  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from storyexport.core.project import Project, TaskRecord  # noqa: E402


PROJECT_DATA = {
    "id": "proj-1",
    "metadata": {
        "title": "Night Chase: Part 1",
        "description": "A short chase",
        "artStyle": "noir",
    },
    "settings": {"aspectRatio": "16:9"},
    "script": "INT. ALLEY - NIGHT",
    "scenes": [
        {"id": "s1", "name": "Opening", "order": 0, "shotIds": ["sh1", "sh2"]},
        {"id": "s2", "name": "Chase", "location": "Rooftops", "order": 1, "shotIds": ["sh3"]},
    ],
    "shots": [
        {
            "id": "sh1",
            "sceneId": "s1",
            "order": 0,
            "shotSize": "wide",
            "description": "Alley at night",
            "dialogue": "Who's there?",
            "referenceImage": "https://cdn.test/img/sh1.png",
            "videoClip": "https://cdn.test/vid/sh1.mp4?sig=2",
            "generationHistory": [
                {"id": "h1", "type": "image", "result": "https://cdn.test/img/sh1.png?v=1"},
                {"id": "h2", "type": "image", "result": "https://cdn.test/img/sh1_old.jpg"},
                {"id": "h3", "type": "image", "result": "https://cdn.test/img/broken.png", "status": "failed"},
            ],
        },
        {
            "id": "sh2",
            "sceneId": "s1",
            "order": 1,
            "gridImages": ["https://cdn.test/img/sh2_g1.png"],
        },
        {
            "id": "sh3",
            "sceneId": "s2",
            "order": 0,
            "audioTrack": "https://cdn.test/aud/sh3.mp3",
        },
    ],
    "characters": [
        {"id": "c1", "name": "Hero Kid", "referenceImages": ["https://cdn.test/img/hero.webp"]},
    ],
}

TASKS_DATA = [
    {
        "id": "task-1",
        "status": "completed",
        "shotId": "sh1",
        "r2Url": "https://cdn.test/vid/sh1.mp4?sig=1",
    },
    {
        "id": "task-2",
        "status": "completed",
        "kaponaiUrl": "https://other.test/t2.mp4",
    },
    {"id": "task-3", "status": "queued", "shotId": "sh2", "r2Url": "https://cdn.test/vid/pending.mp4"},
    {
        "id": "task-4",
        "status": "completed",
        "type": "character_reference",
        "r2Url": "https://cdn.test/vid/ref.mp4",
    },
]

# Archive paths expected for PROJECT_DATA + TASKS_DATA
EXPECTED_ASSET_PATHS = [
    "audio/003_audio.mp3",
    "images/characters/Hero_Kid_1.webp",
    "images/history/001_history_2.jpg",
    "images/history/002_grid_slice_1.png",
    "images/selected/001_selected.png",
    "videos/tasks/assigned/001_task_task_1.mp4",
    "videos/tasks/unassigned/unassigned_task_task_2.mp4",
]


@pytest.fixture
def project() -> Project:
    return Project.model_validate(PROJECT_DATA)


@pytest.fixture
def tasks() -> List[TaskRecord]:
    return [TaskRecord.model_validate(item) for item in TASKS_DATA]


class MediaServer:
    """In-memory media host for httpx.MockTransport."""

    def __init__(self, failing: Set[str] = frozenset()):
        self.failing = set(failing)
        self.requests: List[httpx.Request] = []

    def body_for(self, path: str) -> bytes:
        return f"payload:{path}".encode()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path in self.failing:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, content=self.body_for(request.url.path))

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def media_server() -> MediaServer:
    return MediaServer()


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def header_map(request: httpx.Request) -> Dict[str, str]:
    return {k.lower(): v for k, v in request.headers.items()}


@pytest.fixture
def patch_http(monkeypatch):
    """Route every httpx.AsyncClient created by the code under test to `handler`."""
    real_client = httpx.AsyncClient

    def install(handler: Callable) -> None:
        def factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return real_client(*args, **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", factory)

    return install
