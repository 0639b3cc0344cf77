from bootstrap import create_backend_from_args, main
from block_store.file_storage import FileStorage
from block_store.memory_storage import MemoryStorage


def test_create_memory_backend_is_initialized():
    backend, args = create_backend_from_args(
        ["--backend", "memory", "--total-size", "6", "--read-size", "60"]
    )

    assert isinstance(backend, MemoryStorage)
    assert backend.total_size == 6
    assert backend.buffer_size == 10
    assert args.blocks == 1000


def test_backend_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("BLOCK_STORE_BACKEND", "file")

    backend, _ = create_backend_from_args(["--path", str(tmp_path), "--total-size", "3"])

    assert isinstance(backend, FileStorage)
    assert backend.base_path == str(tmp_path)


def test_smoke_round_trip_memory():
    assert main(["--backend", "memory", "--total-size", "3",
                 "--read-size", "30", "--blocks", "25"]) == 0


def test_smoke_round_trip_file(tmp_path):
    assert main(["--backend", "file", "--path", str(tmp_path), "--namespace", "smoke",
                 "--total-size", "4", "--read-size", "16", "--blocks", "9",
                 "--read-cache-size", "2", "--status-cache-size", "2"]) == 0
