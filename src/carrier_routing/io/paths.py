from __future__ import annotations

from pathlib import Path
from typing import Tuple

ROUTED_SUFFIX = "_routed.xlsx"


def derive_output_paths(input_file: Path) -> Tuple[Path, Path]:
    """
    (routed_xlsx_path, log_path) next to the input orders workbook.

    Raises FileNotFoundError if the input is missing so the CLI can exit early.
    """
    p = Path(input_file)
    if not p.exists():
        raise FileNotFoundError(p)

    routed = p.with_name(f"{p.stem}{ROUTED_SUFFIX}")
    return routed, p.with_suffix(".log")
