"""
Version information for kafkaview.

Installed builds report the distribution version; a source checkout falls
back to the ``[project]`` table of pyproject.toml.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kafkaview")
except PackageNotFoundError:
    import tomllib
    from pathlib import Path

    _pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        with _pyproject.open("rb") as fh:
            __version__ = tomllib.load(fh)["project"]["version"]
    except (OSError, KeyError, tomllib.TOMLDecodeError):
        __version__ = "0.0.0-dev"
