from __future__ import annotations
import argparse
from pathlib import Path
import numpy as np
import matplotlib.pyplot as plt


def plot_history(data, title: str = ""):
    """Boundary flux, structure area and centroid against time, one figure each."""
    t = np.asarray(data["t"], dtype=float)
    flux = np.asarray(data["flux"], dtype=float)
    area = np.asarray(data["area"], dtype=float)
    centroid = np.asarray(data["centroid"], dtype=float).reshape(-1, 2)

    figures = []

    # ---- Figure 1: net boundary flux ----
    fig = plt.figure()
    plt.plot(t, flux, marker="o")
    plt.xlabel("t")
    plt.ylabel("flux")
    plt.title(f"Net boundary flux {title}".strip())
    plt.grid(True)
    figures.append(fig)

    # ---- Figure 2: deformed area relative to the first output ----
    fig = plt.figure()
    plt.plot(t, area / area[0] - 1.0, marker="o")
    plt.xlabel("t")
    plt.ylabel("relative area change")
    plt.title(f"Structure area {title}".strip())
    plt.grid(True)
    figures.append(fig)

    # ---- Figure 3: centroid displacement ----
    fig = plt.figure()
    plt.plot(t, centroid[:, 0] - centroid[0, 0], label="x")
    plt.plot(t, centroid[:, 1] - centroid[0, 1], label="y")
    plt.xlabel("t")
    plt.ylabel("centroid displacement")
    plt.title(f"Structure centroid {title}".strip())
    plt.grid(True)
    plt.legend()
    figures.append(fig)

    return figures


def main(argv=None):
    ap = argparse.ArgumentParser()
    ap.add_argument("--npz", type=str, default="result_ring.npz", help="Path to result npz")
    ap.add_argument("--save", action="store_true", help="Save png figures next to npz")
    ap.add_argument("--no-show", action="store_true", help="Do not open figure windows")
    args = ap.parse_args(argv)

    npz_path = Path(args.npz)
    data = np.load(npz_path)
    print("Keys in npz:", list(data.keys()))

    figures = plot_history(data, title=npz_path.stem)

    if args.save:
        for name, fig in zip(("flux", "area", "centroid"), figures):
            fig.savefig(npz_path.with_suffix("").as_posix() + f"_{name}.png", dpi=200)

    if not args.no_show:
        plt.show()


if __name__ == "__main__":
    main()
