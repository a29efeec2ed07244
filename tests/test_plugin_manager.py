"""
Tests for pluggy-based plugin manager functionality.

This module tests that the format registry and hook system work correctly
with the pluggy framework.
"""

import pytest
from synthetic_files import build_obf, ics_header, obf_stack

from microplane import (
    ConfigurationError,
    IcsFormat,
    ObfFormat,
    RandomAccessStream,
    UnsupportedFormatError,
    lookup,
    lookup_writer,
)
from microplane.plugins import (
    Checker,
    Format,
    get_global_plugin_manager,
    get_plugin_manager,
    register_builtin_formats,
)


class MagicChecker(Checker):
    suffix_sufficient = False
    suffix_necessary = False

    def check_content(self, stream):
        return stream.read(4) == b"RAW!"


class MagicFormat(Format):
    """Minimal third-party format recognized by content only."""

    name = "Magic raw"
    suffixes = ("raw",)
    checker_class = MagicChecker


@pytest.fixture
def pm():
    return register_builtin_formats(get_plugin_manager())


class TestPluggyPluginManager:
    """Test pluggy plugin manager functionality."""

    def test_plugin_manager_creation(self):
        """Test that we can create a plugin manager."""
        pm = get_plugin_manager()
        assert pm is not None
        assert pm.project_name == "microplane"
        assert pm.get_plugins() == set()

    def test_builtin_formats_registered(self, pm):
        """Test that the built-in formats register under their names."""
        assert isinstance(pm.get_plugin("OBF"), ObfFormat)
        assert isinstance(pm.get_plugin("Image Cytometry Standard"), IcsFormat)

    def test_name_and_suffix_hooks(self, pm):
        """Test that name and suffix hooks collect results from every format."""
        names = pm.hook.format_name()
        assert isinstance(names, list)
        assert set(names) == {"OBF", "Image Cytometry Standard"}

        suffixes = pm.hook.format_suffixes()
        assert ["ics", "ids"] in suffixes
        assert ["obf", "msr"] in suffixes

    def test_global_manager_is_shared(self):
        assert get_global_plugin_manager() is get_global_plugin_manager()


class TestLookup:
    def test_lookup_by_suffix(self, tmp_path, pm):
        assert isinstance(lookup(tmp_path / "unwritten.ics", pm=pm), IcsFormat)
        assert isinstance(lookup(tmp_path / "unwritten.IDS", pm=pm), IcsFormat)

    def test_lookup_by_content(self, tmp_path, pm):
        obf = tmp_path / "acquired.bin"
        obf.write_bytes(build_obf([obf_stack([2, 2], data=bytes(8))]))
        ics = tmp_path / "header.txt"
        ics.write_text(ics_header(version="2.0"))
        assert isinstance(lookup(obf, pm=pm), ObfFormat)
        assert isinstance(lookup(ics, pm=pm), IcsFormat)

    def test_lookup_with_open_stream(self, pm):
        stream = RandomAccessStream.from_bytes(build_obf([]))
        assert isinstance(lookup("memory", stream=stream, pm=pm), ObfFormat)
        assert stream.tell() == 0

    def test_unknown_file(self, tmp_path, pm):
        path = tmp_path / "notes.txt"
        path.write_text("nothing to see\n")
        with pytest.raises(UnsupportedFormatError, match="notes.txt"):
            lookup(path, pm=pm)

    def test_lookup_writer_by_suffix(self, pm):
        assert isinstance(lookup_writer("out.msr", pm=pm), ObfFormat)
        assert isinstance(lookup_writer("out.ids", pm=pm), IcsFormat)
        with pytest.raises(UnsupportedFormatError):
            lookup_writer("out.tif", pm=pm)

    def test_register_custom_format(self, tmp_path, pm):
        """Test that an application format takes part in lookup."""
        plugin = MagicFormat()
        pm.register(plugin, name=plugin.name)
        try:
            path = tmp_path / "frame.dat"
            path.write_bytes(b"RAW!" + bytes(16))
            assert lookup(path, pm=pm) is plugin
            # a format without writer never answers writer lookup
            with pytest.raises(UnsupportedFormatError):
                lookup_writer("frame.raw", pm=pm)
        finally:
            pm.unregister(plugin)
        with pytest.raises(UnsupportedFormatError):
            lookup(path, pm=pm)

    def test_custom_format_without_writer(self):
        with pytest.raises(ConfigurationError, match="has no writer"):
            MagicFormat().create_writer()
