"""Wattly: energy allocation and billing engine for local electricity communities."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("wattly")
except Exception:
    __version__ = "dev"
