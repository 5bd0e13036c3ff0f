import asyncio
from unittest.mock import AsyncMock, MagicMock

from cloudbrowser.commands import FetchProductData
from cloudbrowser.messages import DataLoaded
from cloudbrowser.model import ProductType, ViewMode
from cloudbrowser.textual_app import CloudBrowserApp

ROWS = [
    {"id": "i-1", "name": "alpha", "status": "ACTIVE", "region": "GRA11"},
    {"id": "i-2", "name": "beta", "status": "ACTIVE", "region": "SBG5"},
]


def fake_executor():
    async def execute(cmd):
        if isinstance(cmd, FetchProductData):
            return [DataLoaded(cmd.product, cmd.project_id, list(ROWS))]
        return []

    executor = MagicMock()
    executor.execute = AsyncMock(side_effect=execute)
    return executor


async def settle(app, pilot):
    await app.workers.wait_for_complete()
    await pilot.pause()


def test_slash_opens_filter(model, client):
    async def scenario():
        app = CloudBrowserApp(model, client, executor=fake_executor())
        async with app.run_test() as pilot:
            await settle(app, pilot)
            assert app.model.mode is ViewMode.TABLE

            await pilot.press("slash")
            assert app.model.filter_mode

            await pilot.press("b", "e")
            assert app.model.filter_input == "be"

    asyncio.run(scenario())


def test_creation_command_is_the_app_result(model, client):
    async def scenario():
        app = CloudBrowserApp(model, client, executor=fake_executor())
        async with app.run_test() as pilot:
            await settle(app, pilot)
            await pilot.press("right")
            await settle(app, pilot)
            assert app.model.current_product is ProductType.KUBERNETES

            await pilot.press("c")
        return app.return_value

    assert asyncio.run(scenario()) == "ovhcloud cloud kube create --cloud-project proj-1"
    client.close.assert_awaited()
