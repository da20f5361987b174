"""
Analysis and visualization of reconciliation metrics.
Generates plots for predicted positions, correction error and replay depth.
"""

import json
import os


def load_metrics(filepath: str) -> dict:
    """Load a metrics JSON file."""
    with open(filepath) as f:
        return json.load(f)


def plot_positions(data: dict, output_dir: str = 'analysis'):
    """Plot predicted position per tick with corrections overlaid."""
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        print("[ANALYSIS] matplotlib not available. Skipping plots.")
        return

    ticks = data.get('ticks', [])
    if not ticks:
        print("[ANALYSIS] No tick data.")
        return

    os.makedirs(output_dir, exist_ok=True)
    fig, ax = plt.subplots(figsize=(12, 5))

    ids = [t['id'] for t in ticks]
    positions = [t['position'] for t in ticks]
    ax.plot(ids, positions, linewidth=1.2, color='#2196F3',
            marker='o', markersize=3, label='Predicted')

    corrections = data.get('corrections', [])
    if corrections:
        cids = [c['corrected_id'] for c in corrections]
        cpos = [c['corrected_position'] for c in corrections]
        ax.scatter(cids, cpos, color='red', zorder=3, s=25,
                   label='Authoritative (correction)')

    ax.set_title('Client Position per Tick')
    ax.set_xlabel('Tick')
    ax.set_ylabel('Position')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'position_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def plot_correction_error(data: dict, output_dir: str = 'analysis'):
    """Plot prediction error at each correction, plus its CDF."""
    try:
        import matplotlib.pyplot as plt
        import numpy as np
    except ImportError:
        return

    corrections = data.get('corrections', [])
    if not corrections:
        print("[ANALYSIS] No correction data.")
        return

    os.makedirs(output_dir, exist_ok=True)
    fig, axes = plt.subplots(1, 2, figsize=(12, 5))
    fig.suptitle('Prediction Error at Correction', fontsize=13)

    ids = [c['corrected_id'] for c in corrections]
    errors = [c['error'] for c in corrections]
    axes[0].plot(ids, errors, linewidth=0.8, color='purple', marker='.')
    axes[0].set_title('Error per Corrected Tick')
    axes[0].set_xlabel('Tick')
    axes[0].set_ylabel('|predicted - authoritative|')
    axes[0].grid(True, alpha=0.3)

    sorted_vals = np.sort(errors)
    cdf = np.arange(1, len(sorted_vals) + 1) / len(sorted_vals)
    axes[1].plot(sorted_vals, cdf * 100, linewidth=1.5, color='purple')
    axes[1].set_title('Error CDF')
    axes[1].set_xlabel('Error')
    axes[1].set_ylabel('Percentile (%)')
    axes[1].grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'correction_error_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def plot_replay_depth(data: dict, output_dir: str = 'analysis'):
    """Histogram of how many ticks each correction replayed."""
    try:
        import matplotlib.pyplot as plt
        import numpy as np
    except ImportError:
        return

    corrections = data.get('corrections', [])
    if not corrections:
        return

    os.makedirs(output_dir, exist_ok=True)
    depths = [c['replay_length'] for c in corrections]
    fig, ax = plt.subplots(figsize=(8, 4))
    bins = np.arange(0, max(depths) + 2) - 0.5
    ax.hist(depths, bins=bins, edgecolor='black', alpha=0.7, color='#4CAF50')
    mean_d = np.mean(depths)
    ax.axvline(x=mean_d, color='red', linestyle='--',
               label=f'Mean: {mean_d:.1f} ticks')
    ax.set_title('Replay Depth per Correction')
    ax.set_xlabel('Ticks replayed')
    ax.set_ylabel('Frequency')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'replay_depth_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def analyze_all(filepath: str, output_dir: str = 'analysis'):
    """Run all analysis on a metrics file."""
    import numpy as np

    print(f"[ANALYSIS] Loading {filepath}...")
    data = load_metrics(filepath)

    plot_positions(data, output_dir)
    plot_correction_error(data, output_dir)
    plot_replay_depth(data, output_dir)

    # Print summary
    print("\n=== Metrics Summary ===")
    print(f"  Ticks:       {len(data.get('ticks', []))}")

    errors = [c['error'] for c in data.get('corrections', [])]
    if errors:
        print(f"  Corrections: {len(errors)}, "
              f"error mean={np.mean(errors):.1f}, "
              f"P95={np.percentile(errors, 95):.1f}")

    depths = [c['replay_length'] for c in data.get('corrections', [])]
    if depths:
        print(f"  Replay:      mean={np.mean(depths):.1f} ticks, "
              f"max={np.max(depths)} ticks")

    conflicts = data.get('conflicts', [])
    if conflicts:
        print(f"  Conflicts:   {len(conflicts)}")

    stale = data.get('stale', [])
    if stale:
        print(f"  Stale drops: {len(stale)}")


if __name__ == '__main__':
    import argparse
    parser = argparse.ArgumentParser(description='Analyze reconciliation metrics')
    parser.add_argument('file', help='Metrics JSON file to analyze')
    parser.add_argument('--output', default='analysis', help='Output directory')
    args = parser.parse_args()
    analyze_all(args.file, args.output)
