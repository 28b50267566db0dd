import importlib

import pytest

PORT_MODULES = [
    "barfeed.ports.secrets_provider",
    "barfeed.ports.settings_store",
    "barfeed.ports.telemetry",
]


@pytest.mark.parametrize("module_name", PORT_MODULES)
def test_all_ports_import(module_name):
    assert importlib.import_module(module_name)
