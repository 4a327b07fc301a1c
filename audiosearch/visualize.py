import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt

from audiosearch.config import PeakConfig


def plot_constellation(frame_peaks, title="Constellation Map"):
    """
    Plot every frame's peaks as a frame/frequency "star field".

    The strongest peak of each frame (the one that anchors its hash) is
    drawn in red, the rest in grey.

    Args:
        frame_peaks: One list of peak frequencies per frame
        title: Plot title

    Returns:
        fig: The matplotlib figure, left open for the caller
    """
    anchor_x, anchor_f = [], []
    other_x, other_f = [], []
    for frame_index, peaks in enumerate(frame_peaks):
        for rank, freq in enumerate(peaks):
            if rank == 0:
                anchor_x.append(frame_index)
                anchor_f.append(freq)
            else:
                other_x.append(frame_index)
                other_f.append(freq)

    fig, ax = plt.subplots(figsize=(14, 6))
    ax.scatter(other_x, other_f, s=4, color="gray", alpha=0.5, label="Peaks")
    ax.scatter(anchor_x, anchor_f, s=6, color="r", label="Strongest peak")
    ax.set_xlabel("Frame")
    ax.set_ylabel("Frequency (Hz)")
    ax.set_xlim(0, max(len(frame_peaks) - 1, 1))
    ax.set_ylim(PeakConfig.MIN_FREQ, PeakConfig.MAX_FREQ)
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    ax.legend(loc="upper right")

    fig.tight_layout()
    return fig


def visualize_constellation(frame_peaks, save_path, title="Constellation Map"):
    """Save the constellation plot of a clip's peaks to save_path"""
    fig = plot_constellation(frame_peaks, title=title)
    fig.savefig(save_path, dpi=100)
    plt.close(fig)
