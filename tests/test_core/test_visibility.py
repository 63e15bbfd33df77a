from polyfs.core.visibility import PortableUnixVisibility, Visibility


def test_default_modes():
    converter = PortableUnixVisibility()
    assert converter.for_file(Visibility.PUBLIC) == 0o644
    assert converter.for_file(Visibility.PRIVATE) == 0o600
    assert converter.for_directory(Visibility.PUBLIC) == 0o755
    assert converter.for_directory(Visibility.PRIVATE) == 0o700


def test_from_mode_ignores_file_type_bits():
    converter = PortableUnixVisibility()
    assert converter.from_file(0o100600) is Visibility.PRIVATE
    assert converter.from_file(0o100644) is Visibility.PUBLIC
    assert converter.from_directory(0o040700) is Visibility.PRIVATE
    assert converter.from_directory(0o040755) is Visibility.PUBLIC


def test_unknown_mode_reads_as_public():
    converter = PortableUnixVisibility()
    assert converter.from_file(0o640) is Visibility.PUBLIC


def test_custom_modes():
    converter = PortableUnixVisibility(file_private=0o640, directory_private=0o750)
    assert converter.for_file(Visibility.PRIVATE) == 0o640
    assert converter.from_file(0o640) is Visibility.PRIVATE
    assert converter.from_directory(0o750) is Visibility.PRIVATE


def test_visibility_values():
    assert Visibility("public") is Visibility.PUBLIC
    assert Visibility("private") is Visibility.PRIVATE
