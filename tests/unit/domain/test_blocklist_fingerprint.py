"""Tests for blocklist fingerprints."""

from grabarr.domain.entities import fingerprint
from grabarr.domain.value_objects import DownloadProtocol


def test_fingerprint_normalises_case_and_whitespace() -> None:
    a = fingerprint(1, DownloadProtocol.TORRENT, "Show.S01E01.WEBDL-1080p-GRP")
    b = fingerprint(1, DownloadProtocol.TORRENT, "  show.s01e01.webdl-1080p-grp ")
    assert a == b


def test_indexer_and_protocol_are_part_of_identity() -> None:
    title = "Show.S01E01.WEBDL-1080p-GRP"
    base = fingerprint(1, DownloadProtocol.TORRENT, title)
    assert base != fingerprint(2, DownloadProtocol.TORRENT, title)
    assert base != fingerprint(1, DownloadProtocol.USENET, title)
