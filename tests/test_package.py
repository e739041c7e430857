import importlib
import pkgutil

import pytest

import petchain


def _modules():
    for info in pkgutil.walk_packages(petchain.__path__, prefix="petchain."):
        yield info.name


def test_version():
    assert petchain.__version__ == "0.1.0"


@pytest.mark.parametrize("name", sorted(_modules()))
def test_modules_are_documented(name):
    module = importlib.import_module(name)
    assert (module.__doc__ or "").strip()
