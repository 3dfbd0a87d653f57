"""Tests for naming and extension helpers."""

import pytest

from streamnotes.utils import (
    image_mime_type,
    is_image_name,
    is_markdown_name,
    split_extension,
    unique_sibling_name,
)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("image.png", ("image", ".png")),
        ("archive.tar.gz", ("archive.tar", ".gz")),
        ("README", ("README", "")),
        (".env", (".env", "")),
    ],
)
def test_split_extension(name, expected):
    assert split_extension(name) == expected


def test_unique_sibling_name_free_name_is_kept():
    assert unique_sibling_name("note.md", lambda n: False) == "note.md"


def test_unique_sibling_name_counts_up():
    taken = {"note.md", "note (1).md", "note (2).md"}
    assert unique_sibling_name("note.md", taken.__contains__) == "note (3).md"
    assert unique_sibling_name("folder", {"folder"}.__contains__) == "folder (1)"


@pytest.mark.parametrize("name", ["a.png", "B.JPG", "c.jpeg", "d.gif", "e.webp", "f.SVG"])
def test_is_image_name(name):
    assert is_image_name(name)


@pytest.mark.parametrize("name", ["a.md", "png", "photo.png.txt", "a.bmp"])
def test_is_not_image_name(name):
    assert not is_image_name(name)


def test_is_markdown_name():
    assert is_markdown_name("Note.MD")
    assert not is_markdown_name("note.markdown")


def test_image_mime_type():
    assert image_mime_type("x.jpg") == "image/jpeg"
    assert image_mime_type("x.svg") == "image/svg+xml"
    assert image_mime_type("x.bin") == "application/octet-stream"
