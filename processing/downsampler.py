"""
Largest-Triangle-Three-Buckets downsampling for chart series.
Reduces long recordings to a fixed number of points while keeping peaks and
inflections visible.
"""
import numpy as np

import config


def lttb_downsample(points, threshold):
    """
    Reduce an ordered series of (x, y) points to `threshold` points.

    The first and last points are always kept. Every interior bucket contributes
    the point forming the largest triangle with the previously selected point
    and the centroid of the next bucket; the earliest point wins ties.

    Args:
        points: Ordered sequence of objects with x and y attributes
        threshold: Number of points wanted (0 disables reduction)

    Returns:
        list: Selected input points (the input itself when no reduction applies)
    """
    if threshold < 0:
        raise ValueError(f"threshold must be >= 0, got {threshold}")

    data_length = len(points)
    if threshold >= data_length or threshold == 0:
        return points

    if threshold <= 2:
        return [points[0], points[-1]]

    xs = np.fromiter((p.x for p in points), dtype=float, count=data_length)
    ys = np.fromiter((p.y for p in points), dtype=float, count=data_length)

    sampled = [points[0]]
    bucket_size = (data_length - 2) / (threshold - 2)
    a = 0  # Index of the previously selected point

    for i in range(threshold - 2):
        # Centroid of the next bucket
        next_start = int(np.floor((i + 1) * bucket_size)) + 1
        next_end = min(int(np.floor((i + 2) * bucket_size)) + 1, data_length)
        if next_end > next_start:
            avg_x = xs[next_start:next_end].mean()
            avg_y = ys[next_start:next_end].mean()
        else:
            avg_x = xs[next_start]
            avg_y = ys[next_start]

        # Current bucket
        range_start = int(np.floor(i * bucket_size)) + 1
        range_end = min(int(np.floor((i + 1) * bucket_size)) + 1, data_length)

        areas = np.abs(
            (xs[a] - xs[range_start:range_end]) * (avg_y - ys[a])
            - (xs[a] - avg_x) * (ys[range_start:range_end] - ys[a])
        ) / 2.0

        # argmax returns the first occurrence of the maximum
        next_a = range_start + int(np.argmax(areas))
        sampled.append(points[next_a])
        a = next_a

    sampled.append(points[data_length - 1])
    return sampled


def downsample_for_display(points, sample=config.POSE_GRAPH_SAMPLE,
                           sample_threshold=config.POSE_GRAPH_SAMPLE_THRESHOLD):
    """Reduce a chart series to `sample` points once it grows past `sample_threshold`."""
    if len(points) > sample_threshold:
        return lttb_downsample(points, sample)
    return points
