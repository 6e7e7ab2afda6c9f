from pathlib import Path
import pytest
from carrier_routing.io.paths import derive_output_paths, ROUTED_SUFFIX


def test_derive_output_paths_happy_path(tmp_path: Path):
    src = tmp_path / "Orders_2024-01-15.xlsx"
    src.write_text("placeholder")

    routed, log = derive_output_paths(src)
    assert routed.parent == src.parent
    assert routed.name == f"{src.stem}{ROUTED_SUFFIX}"
    assert routed.name == "Orders_2024-01-15_routed.xlsx"
    assert log.parent == src.parent
    assert log.name == f"{src.stem}.log"


def test_derive_output_paths_missing_input_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        derive_output_paths(tmp_path / "missing.xlsx")
