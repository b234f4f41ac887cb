from pathlib import Path

import pytest

from alpine_chroot.keys import (
    ALPINE_KEYS,
    SIGNING_KEYS,
    TrustAnchor,
    install_keys,
    missing_signing_keys,
)


def test_install_keys_writes_one_pem_file_per_anchor(tmp_path: Path) -> None:
    dest = tmp_path / "etc" / "apk" / "keys"

    written = install_keys(dest)

    assert sorted(path.name for path in dest.iterdir()) == sorted(
        f"alpine-devel@lists.alpinelinux.org-{anchor.id}.rsa.pub" for anchor in ALPINE_KEYS
    )
    assert len(written) == len(ALPINE_KEYS)
    for anchor in ALPINE_KEYS:
        text = (dest / anchor.filename).read_text(encoding="ascii")
        lines = text.splitlines()
        assert lines[0] == "-----BEGIN PUBLIC KEY-----"
        assert lines[-1] == "-----END PUBLIC KEY-----"
        assert "".join(lines[1:-1]) == anchor.body
        assert all(len(line) <= 64 for line in lines[1:-1])


def test_install_keys_is_byte_identical_across_runs(tmp_path: Path) -> None:
    dest = tmp_path / "keys"
    first = {path.name: path.read_bytes() for path in install_keys(dest)}
    second = {path.name: path.read_bytes() for path in install_keys(dest)}

    assert first == second
    assert len(list(dest.iterdir())) == len(ALPINE_KEYS)


def test_install_keys_overwrites_tampered_file(tmp_path: Path) -> None:
    anchor = TrustAnchor(id="deadbeef", body="QUJD" * 20)
    dest = tmp_path / "keys"
    install_keys(dest, [anchor])
    (dest / anchor.filename).write_text("tampered", encoding="ascii")

    install_keys(dest, [anchor])

    assert (dest / anchor.filename).read_text(encoding="ascii") == anchor.render()


def test_embedded_anchor_ids_are_unique_short_hex() -> None:
    ids = [anchor.id for anchor in ALPINE_KEYS]
    assert len(ids) == len(set(ids))
    assert all(len(anchor_id) == 8 and int(anchor_id, 16) >= 0 for anchor_id in ids)


def test_signing_keys_cover_published_architectures() -> None:
    assert {"x86_64", "x86", "aarch64", "armv7", "armhf", "ppc64le"} <= set(SIGNING_KEYS)
    assert all(len(ids) == 2 for ids in SIGNING_KEYS.values())


@pytest.mark.parametrize(
    ("arch", "expected"),
    [
        ("aarch64", ("58199dcc", "616ae350")),
        ("arm64", ("58199dcc", "616ae350")),
        ("armv7l", ("524d27bb", "616adfeb")),
        ("i686", ("5243ef4b", "61666e3f")),
    ],
)
def test_missing_signing_keys_maps_machine_names(arch: str, expected: tuple[str, ...]) -> None:
    assert missing_signing_keys(arch, []) == expected


def test_missing_signing_keys_only_lists_absent_ids() -> None:
    anchors = [TrustAnchor(id="6165ee59", body="QUJD" * 20)]

    assert missing_signing_keys("x86_64", anchors) == ("4a6a0840",)
    assert missing_signing_keys("riscv64", []) == ()
