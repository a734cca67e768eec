"""Rectangle detection: contour detector, acceptance gate and frame throttle."""
