"""Headless-safe plotting of training curves."""

from __future__ import annotations

import math
from pathlib import Path
from typing import List, Tuple


class PlotAdapter:
    """Collect training and selection errors per epoch and plot them on close."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self._history: List[Tuple[int, float, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_epoch(self, epoch: int, metrics) -> None:
        if not self.enable_plots:
            return
        loss = float(metrics.get("loss", math.nan))
        selection_error = float(metrics.get("selection_error", math.nan))
        self._history.append((epoch, loss, selection_error))

    def close(self) -> Path | None:
        if not self.enable_plots or not self._history:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        epochs, losses, selection_errors = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(epochs, losses, label="training loss")
        if any(math.isfinite(value) for value in selection_errors):
            ax.plot(epochs, selection_errors, label="selection error")
        ax.set_xlabel("Epoch")
        ax.set_ylabel("Loss")
        ax.set_title("Training Curve")
        ax.legend()
        plot_path = self.run_dir / "loss.png"
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path

    __call__ = on_epoch
