from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

The CLI loads the two datasets and runs the backend calls as discrete steps;
one bar counts those steps. In non-TTY environments (CI, pipes) no bar is
created so no ANSI control sequences end up in captured output.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Step counter backed by a single tqdm bar."""

    def __init__(self, total_steps: int, *, description: str = "bomsync") -> None:
        self.total_steps = total_steps
        self.description = description
        self.current_step = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_steps,
                desc=description,
                unit="step",
                leave=False,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_step(self, label: str | Path) -> None:
        """Show ``label`` (a step name or the file being loaded) next to the bar."""
        self.current_step += 1
        if self.pbar is not None:
            name = label.name if isinstance(label, Path) else label
            self.pbar.set_description(f"{self.description} ({name})")

    def finish_step(self) -> None:
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
