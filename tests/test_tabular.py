"""Tests for upload storage and CSV parsing."""

from __future__ import annotations

import io

import pytest

from fanhub.errors import MalformedInput
from fanhub.provisioning import tabular
from fanhub.provisioning.tabular import read_rows, stored_upload


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(tabular, "UPLOAD_DIR", path)
    return path


def _write(tmp_path, content: bytes):
    path = tmp_path / "in.csv"
    path.write_bytes(content)
    return path


class TestStoredUpload:
    def test_file_removed_after_use(self, upload_dir):
        with stored_upload(io.BytesIO(b"a,b\n1,2\n")) as path:
            assert path.parent == upload_dir
            assert path.read_bytes() == b"a,b\n1,2\n"
        assert not path.exists()

    def test_file_removed_on_error(self):
        with pytest.raises(MalformedInput):
            with stored_upload(io.BytesIO(b"")) as path:
                read_rows(path)
        assert not path.exists()


class TestReadRows:
    def test_header_names_are_stripped(self, tmp_path):
        path = _write(tmp_path, b" FanId , Fan Name ,FanModelId\n1,Lobby,m1\n")
        assert read_rows(path) == [{"FanId": "1", "Fan Name": "Lobby", "FanModelId": "m1"}]

    def test_utf8_bom(self, tmp_path):
        path = _write(tmp_path, "\ufeffFanId,Fan Name\n1,Lobby\n".encode("utf-8"))
        assert read_rows(path, required_columns=["FanId"])[0]["FanId"] == "1"

    def test_empty_file(self, tmp_path):
        with pytest.raises(MalformedInput) as exc:
            read_rows(_write(tmp_path, b""))
        assert exc.value.message == "Invalid CSV format"

    def test_missing_required_column(self, tmp_path):
        with pytest.raises(MalformedInput) as exc:
            read_rows(_write(tmp_path, b"FanId,Name\n1,x\n"), required_columns=["FanId", "Fan Name"])
        assert exc.value.details["columns"] == ["Fan Name"]

    def test_not_utf8(self, tmp_path):
        with pytest.raises(MalformedInput):
            read_rows(_write(tmp_path, b"FanId\n\xff\xfe\xfa\n"))

    def test_unterminated_quote(self, tmp_path):
        with pytest.raises(MalformedInput):
            read_rows(_write(tmp_path, b'FanId,Fan Name\n1,"Lobby\n'))

    def test_row_limit(self, tmp_path):
        path = _write(tmp_path, b"FanId\n1\n2\n3\n")
        assert len(read_rows(path, max_rows=3)) == 3
        with pytest.raises(MalformedInput) as exc:
            read_rows(path, max_rows=2)
        assert exc.value.details == {"maxRows": 2}
