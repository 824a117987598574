import base64

import numpy as np
import pytest

from modelcut.exceptions import ImageDecodeError
from modelcut.models.image import Image
from modelcut.repositories.image_repository import ImageRepository
from modelcut.services.image_service import ImageService


@pytest.fixture
def repo():
    return ImageRepository()


def test_rgba_png_decodes_losslessly(repo, encode):
    rng = np.random.default_rng(3)
    pixels = rng.integers(0, 256, size=(6, 5, 4), dtype=np.uint8)

    img = repo.decode(encode(pixels))

    assert img.pixels.shape == (6, 5, 4)
    np.testing.assert_array_equal(img.pixels, pixels)


def test_jpeg_gets_opaque_alpha(repo, encode):
    rgb = np.full((8, 8, 3), (200, 40, 40), dtype=np.uint8)

    img = repo.decode(encode(rgb, "JPEG"))

    assert img.pixels.shape == (8, 8, 4)
    assert (img.pixels[:, :, 3] == 255).all()
    # red stays red after the BGR → RGBA conversion
    assert img.pixels[4, 4, 0] > img.pixels[4, 4, 2]


def test_grayscale_expands_to_four_channels(repo, encode):
    gray = np.full((3, 4), 77, dtype=np.uint8)

    img = repo.decode(encode(gray))

    assert img.pixels.shape == (3, 4, 4)
    assert tuple(img.pixels[1, 1]) == (77, 77, 77, 255)


@pytest.mark.parametrize("payload", [b"", b"not an image at all", b"\x89PNG\r\n\x1a\n broken"])
def test_undecodable_bytes_raise(repo, payload):
    with pytest.raises(ImageDecodeError):
        repo.decode(payload)


def test_data_uri_round_trip(repo, make_image):
    img = make_image(2, 3, (10, 20, 30, 40))
    uri = repo.to_data_uri(img)

    assert uri.startswith("data:image/png;base64,")
    np.testing.assert_array_equal(repo.decode_data_uri(uri).pixels, img.pixels)


@pytest.mark.parametrize("uri", [
    "image/png;base64,AAAA",
    "data:image/png,AAAA",
    "data:image/png;base64,@@@not-base64@@@",
])
def test_malformed_data_uri_raises(repo, uri):
    with pytest.raises(ImageDecodeError):
        repo.split_data_uri(uri)


def test_split_data_uri_returns_mime_and_bytes(repo):
    mime, data = repo.split_data_uri("data:image/webp;base64," + base64.b64encode(b"abc").decode())
    assert mime == "image/webp"
    assert data == b"abc"


def test_save_and_load_keep_alpha(repo, make_image, tmp_path):
    img = make_image(4, 4, (1, 2, 3, 0))
    img.path = tmp_path / "nested" / "out.png"

    repo.save(img)
    loaded = repo.load(img.path)

    assert loaded.path == img.path
    np.testing.assert_array_equal(loaded.pixels, img.pixels)


def test_load_missing_file(repo, tmp_path):
    with pytest.raises(FileNotFoundError):
        repo.load(tmp_path / "missing.png")


def test_iter_dir_skips_unsupported_and_broken_files(repo, encode, tmp_path):
    (tmp_path / "a.png").write_bytes(encode(np.zeros((2, 2, 4), dtype=np.uint8)))
    (tmp_path / "b.png").write_bytes(b"corrupt")
    (tmp_path / "notes.txt").write_text("hello")

    images = list(repo.iter_dir(tmp_path))

    assert [img.path.name for img in images] == ["a.png"]


def test_iter_dir_rejects_non_directory(repo, tmp_path):
    with pytest.raises(NotADirectoryError):
        list(repo.iter_dir(tmp_path / "nope"))


def test_preserve_original_keeps_first_state(make_image):
    service = ImageService()
    img = make_image(1, 1, (1, 1, 1, 255))
    first = img.pixels.copy()

    service.apply_pipeline_modification(img, np.zeros((1, 1, 4), dtype=np.uint8))
    service.apply_pipeline_modification(img, np.ones((1, 1, 4), dtype=np.uint8))

    np.testing.assert_array_equal(img.original_pixels, first)
    assert img.pixels[0, 0, 0] == 1


def test_resolve_bytes_reads_local_file(tmp_path):
    path = tmp_path / "shot.png"
    path.write_bytes(b"payload")

    data, mime = ImageService().resolve_bytes(str(path))

    assert data == b"payload"
    assert mime == "image/png"


def test_ensure_rgba_surface_makes_contiguous():
    pixels = np.zeros((4, 6, 4), dtype=np.uint8)[:, ::2]
    out = ImageService.ensure_rgba_surface(Image(pixels=pixels))
    assert out.flags["C_CONTIGUOUS"]
    assert out.shape == (4, 3, 4)
