import pytest
from unittest.mock import AsyncMock, MagicMock

from cloudbrowser.debug_log import DebugLogger
from cloudbrowser.messages import KeyPress
from cloudbrowser.model import Model, ViewMode


# Textual names punctuation keys after the character
KEY_CHARACTERS = {
    "slash": "/",
    "full_stop": ".",
    "minus": "-",
    "underscore": "_",
    "space": " ",
}


def press(key, character=None):
    """KeyPress the way Textual reports it: printable keys carry their character."""
    if character is None:
        character = key if len(key) == 1 else KEY_CHARACTERS.get(key)
    return KeyPress(key, character)


@pytest.fixture
def model():
    return Model(cloud_project="proj-1", cloud_project_name="My project", debug_logger=DebugLogger(10))


@pytest.fixture
def table_model(model):
    model.mode = ViewMode.TABLE
    model.current_data = [
        {"id": "i-1", "name": "alpha", "status": "ACTIVE", "region": "GRA11", "imageId": "img-1"},
        {"id": "i-2", "name": "beta", "status": "SHUTOFF", "region": "SBG5", "imageId": "img-2"},
        {"id": "i-3", "name": "gamma", "status": "ACTIVE", "region": "GRA11", "imageId": "img-1"},
    ]
    return model


@pytest.fixture
def client():
    mock = MagicMock()
    mock.get = AsyncMock()
    mock.post = AsyncMock()
    mock.put = AsyncMock()
    mock.delete = AsyncMock()
    mock.close = AsyncMock()
    return mock
