from modelcut.cli.batch_chroma_key import main


def test_keys_every_image_in_folder(tmp_path, ring_image, encode, decode_png):
    src, dst = tmp_path / "renders", tmp_path / "cutouts"
    src.mkdir()
    (src / "look-01.png").write_bytes(encode(ring_image.pixels))
    (src / "look-02.jpg").write_bytes(encode(ring_image.pixels[:, :, :3], "JPEG"))
    (src / "readme.txt").write_text("ignored")

    assert main([str(src), str(dst), "--tolerance", "40"]) == 0

    assert sorted(p.name for p in dst.iterdir()) == ["look-01.png", "look-02.png"]
    out = decode_png((dst / "look-01.png").read_bytes())
    assert out[0, 0, 3] == 0
    assert tuple(out[2, 2]) == (150, 115, 80, 195)


def test_missing_input_folder(tmp_path):
    assert main([str(tmp_path / "nope"), str(tmp_path / "out")]) == 2


def test_recursive_mirrors_input_tree(tmp_path, ring_image, encode):
    src, dst = tmp_path / "renders", tmp_path / "cutouts"
    for folder in ("summer", "winter"):
        (src / folder).mkdir(parents=True)
        (src / folder / "look.jpg").write_bytes(encode(ring_image.pixels[:, :, :3], "JPEG"))

    assert main([str(src), str(dst), "--recursive"]) == 0

    assert (dst / "summer" / "look.png").is_file()
    assert (dst / "winter" / "look.png").is_file()
